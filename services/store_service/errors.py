"""Store domain errors.

Each error carries a machine-readable ``kind``, the HTTP status it maps to,
a human-readable message, and structured context so clients can show which
item failed and why.
"""

from typing import Any, Optional


class StoreError(Exception):
    """Base class for errors surfaced to store API clients."""

    kind = "store_error"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.message, **self.context}


class NotFoundError(StoreError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None):
        super().__init__(
            f"{entity} not found",
            entity=entity.lower(),
            id=str(entity_id) if entity_id is not None else None,
        )


class EmptyCartError(StoreError):
    kind = "empty_cart"

    def __init__(self):
        super().__init__("Cart is empty")


class ProductUnavailableError(StoreError):
    kind = "product_unavailable"

    def __init__(self, product_name: str, product_id: Any = None):
        super().__init__(
            f'Product "{product_name}" is no longer available',
            product=product_name,
            product_id=str(product_id) if product_id is not None else None,
        )


class VariantUnavailableError(StoreError):
    kind = "variant_unavailable"

    def __init__(self, product_name: str, variant_name: str, variant_id: Any = None):
        super().__init__(
            f'Variant "{variant_name}" for "{product_name}" is no longer available',
            product=product_name,
            variant=variant_name,
            variant_id=str(variant_id) if variant_id is not None else None,
        )


class VariantRequiredError(StoreError):
    kind = "variant_required"

    def __init__(self, product_name: str):
        super().__init__(
            f'Choose an option for "{product_name}" before adding it to the cart',
            product=product_name,
        )


class InsufficientStockError(StoreError):
    kind = "insufficient_stock"

    def __init__(
        self,
        product_name: str,
        variant_name: Optional[str],
        available: int,
        requested: int,
    ):
        label = f"{product_name} - {variant_name}" if variant_name else product_name
        super().__init__(
            f'Only {available} items available for "{label}"',
            product=product_name,
            variant=variant_name,
            available=available,
            requested=requested,
        )


class InvalidTransitionError(StoreError):
    kind = "invalid_transition"

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        super().__init__(
            message or f"Order cannot move from {current} to {target}",
            current_status=current,
            requested_status=target,
        )
