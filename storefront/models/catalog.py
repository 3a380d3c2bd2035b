from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

ALL_CATEGORIES = "All"
DEFAULT_CATEGORY = "General"

class ProductSort(str, Enum):
    NAME = "name"
    NEWEST = "newest"

class Product(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    image_url: Optional[str] = None
    category: Optional[str] = None
    created_at: Optional[datetime] = None

class ProductIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    image_url: Optional[str] = None
    category: Optional[str] = None

class ProductFilters(BaseModel):
    search: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    category: Optional[str] = None
    sort: ProductSort = ProductSort.NAME
