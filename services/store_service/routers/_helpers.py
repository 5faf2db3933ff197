"""Shared helpers for store routers."""

from services.store_service.schemas import OrderListResponse, OrderResponse, Pagination


def paginate_orders(orders, total: int, page: int, limit: int) -> OrderListResponse:
    """Wrap a page of orders with pagination metadata."""
    total_pages = (total + limit - 1) // limit
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        pagination=Pagination(
            current_page=page,
            total_pages=total_pages,
            total_orders=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )
