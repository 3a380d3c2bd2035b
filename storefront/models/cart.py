from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

class LineItem(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    image_url: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

class AddToCart(BaseModel):
    product_id: str

class UpdateQuantity(BaseModel):
    # Values below 1 are clamped by the cart, not rejected here
    quantity: int

class CartView(BaseModel):
    items: list[LineItem]
    total: Decimal
    item_count: int
