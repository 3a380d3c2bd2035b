from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel

class CheckoutStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class OrderStatus(str, Enum):
    PENDING = "pending"

class CheckoutPayload(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

class CustomerRecord(BaseModel):
    id: str
    name: str
    phone_number: str

class OrderRecord(BaseModel):
    id: str
    customer_id: str
    total_amount: Decimal
    status: OrderStatus = OrderStatus.PENDING

class OrderLineRecord(BaseModel):
    order_id: str
    product_id: str
    quantity: int
    price_at_order: Decimal

class CheckoutReceipt(BaseModel):
    order_id: str
    customer_id: str
    total_amount: Decimal
    summary: str
