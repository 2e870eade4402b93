from flask import jsonify


def ok(data=None, code=200):
    return jsonify(data or {}), code


def error(kind: str, message: str, code: int = 400):
    """Same body shape as OrderError.to_dict, for failures raised outside the services."""
    return jsonify({"error": kind, "message": message}), code
