"""Table session schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tableside.models.restaurant import OrderStatus, PaymentStatus
from tableside.models.table_session import TableSessionStatus


class TableSessionCreate(BaseModel):
    table_id: int = Field(..., gt=0)


class TableSessionResponse(BaseModel):
    id: str
    restaurant_id: int
    table_id: int
    status: TableSessionStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    last_activity_at: datetime
    end_reason: Optional[str] = None
    cart_items: List[Dict[str, Any]] = []

    model_config = ConfigDict(from_attributes=True)


class TableSessionOpened(TableSessionResponse):
    created: bool


class OrderSummary(BaseModel):
    id: int
    order_number: str
    order_status: OrderStatus
    payment_status: PaymentStatus
    total: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TableSessionWithOrders(TableSessionResponse):
    orders: List[OrderSummary] = []


class ActivityResponse(BaseModel):
    session_id: str
    active: bool


class CartItem(BaseModel):
    id: Union[int, str]
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0, le=99)
    notes: Optional[str] = Field(None, max_length=500)


class CartUpdate(BaseModel):
    items: List[CartItem] = Field(default_factory=list, max_length=100)


class CartResponse(BaseModel):
    session_id: str
    items: List[Dict[str, Any]]


class TableReleaseRequest(BaseModel):
    session_id: Optional[str] = None


class ForceReleaseRequest(BaseModel):
    session_id: Optional[str] = None
    table_id: Optional[int] = None

    @model_validator(mode="after")
    def require_identifier(self) -> "ForceReleaseRequest":
        if not self.session_id and not self.table_id:
            raise ValueError("Either session_id or table_id is required")
        return self


class TableReleaseResponse(BaseModel):
    table_id: int
    session_id: Optional[str] = None
    session_cancelled: bool
    table_status: str


class CleanupSessionEntry(BaseModel):
    session_id: str
    table_id: int
    table_number: Optional[str] = None
    inactive_seconds: int
    table_freed: bool


class CleanupResponse(BaseModel):
    cleaned_up: int
    tables_freed: int
    sessions: List[CleanupSessionEntry]
    errors: List[Dict[str, Any]]
