from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .base import EntityMixin


UNIT_PIECE = "piece"
UNIT_BOX = "box"
UNIT_SQUARE_FEET = "square_feet"
UNIT_SQUARE_METER = "square_meter"

VALID_UNITS = [UNIT_PIECE, UNIT_BOX, UNIT_SQUARE_FEET, UNIT_SQUARE_METER]

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"

VALID_MOVEMENT_TYPES = [MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT]


@dataclass(frozen=True)
class Product(EntityMixin):
    """
    Catalogue item.

    quantity is only ever changed through a recorded StockMovement and is
    never negative. sku is unique within the business scope.
    """
    entity_type = "products"

    id: str
    name: str
    sku: str = ""
    price_cents: int = 0
    quantity: int = 0
    category: str = ""
    barcode: str | None = None
    low_stock_threshold: int = 0
    unit: str = UNIT_PIECE
    pieces_per_box: int | None = None
    area_per_piece: float | None = None
    material: str | None = None
    finish: str | None = None
    color: str | None = None
    grade: str | None = None
    manufacturer: str | None = None
    hsn_code: str | None = None
    description: str | None = None
    tax_rate_bps: int = 0
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.low_stock_threshold

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0

    @property
    def stock_value_cents(self) -> int:
        return self.price_cents * self.quantity


@dataclass(frozen=True)
class StockMovement(EntityMixin):
    """
    Audit record for a product quantity change.

    quantity is positive for in/out and a signed, non-zero delta for
    adjustment. quantity_after is the clamped product quantity that resulted.
    """
    entity_type = "stock_movements"

    id: str
    product_id: str
    movement_type: str
    quantity: int
    reason: str | None = None
    reference: str | None = None
    quantity_after: int = 0
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def signed_delta(self) -> int:
        if self.movement_type == MOVEMENT_OUT:
            return -self.quantity
        return self.quantity
