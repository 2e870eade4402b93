from flask import jsonify


class OrderError(Exception):
    """Base class for failures surfaced to API callers."""

    kind = "order_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(OrderError):
    """Malformed or missing payload field; the client may resubmit."""

    kind = "validation_error"
    status_code = 400


class RoleError(OrderError):
    """Actor is not allowed to perform this operation on this order."""

    kind = "role_error"
    status_code = 403


class StateError(OrderError):
    """Operation is not legal in the order's current step or status.

    Clients should refetch the order and render the current step.
    """

    kind = "state_error"
    status_code = 409


class NotFoundError(OrderError):
    kind = "not_found"
    status_code = 404


def register_error_handlers(app):
    @app.errorhandler(OrderError)
    def handle_order_error(e: OrderError):
        app.logger.info("%s: %s", e.kind, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify({"error": "not_found", "message": "Route not found"}), 404

    @app.errorhandler(405)
    def handle_405(e):
        return jsonify({"error": "method_not_allowed", "message": str(e)}), 405
