from flask import Blueprint, request

from ..auth_mw import require_admin
from ..services import order_service
from ..utils.serializers import order_json

bp_admin = Blueprint("admin_orders", __name__, url_prefix="/admin/orders")


@bp_admin.get("")
@require_admin
def list_orders():
    """Danh sách đơn hàng cho trang quản trị.

    Query: status (all|ongoing|<STATUS>), search (id đơn / sản phẩm / người dùng),
    sort (newest|oldest), page, per_page.
    """
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("per_page", type=int)
    pagination = order_service.list_orders(
        status=request.args.get("status", "all"),
        search=request.args.get("search", ""),
        sort=request.args.get("sort"),
        page=max(page, 1),
        per_page=per_page,
    )
    return {
        "data": [order_json(o) for o in pagination.items],
        "pagination": {
            "page": pagination.page,
            "per_page": pagination.per_page,
            "total": pagination.total,
            "pages": pagination.pages,
        },
    }


@bp_admin.get("/stats")
@require_admin
def stats():
    counts = order_service.order_stats()
    return {"data": [{"status": k, "count": v} for k, v in counts.items()],
            "total": sum(counts.values())}
