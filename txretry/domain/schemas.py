from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .enums import OrderStatus

class OrderIn(BaseModel):
    customer: str = Field(min_length=1, max_length=128)
    amount: Optional[float] = None


class OrderOut(BaseModel):
    id: int
    customer: str
    amount: Optional[float] = None
    status: OrderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
