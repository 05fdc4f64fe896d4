from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime

OrderStatus = Literal["Pendente", "Pronto para servir", "Entregue", "Cancelado", "Pago"]
ItemStatus = Literal["pending", "preparing", "ready", "delivered", "finished"]
OrderType = Literal["table", "counter", "takeaway"]


class OrderItem(BaseModel):
    """Canonical order line as stored in ``orders.items``."""

    id: str
    item_id: str
    name: str
    category: str = ""
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    unit: str = "Un"
    status: ItemStatus = "pending"
    notes: str = ""
    description: str = ""
    is_vegetarian: bool = False
    is_vegan: bool = False
    is_gluten_free: bool = False
    is_lactose_free: bool = False
    custom_dietary_restrictions: List[str] = []


class OrderItemRead(OrderItem):
    # read side never rejects a stored row
    quantity: int
    price: float
    status: str = "pending"


class OrderItemIn(BaseModel):
    # price and name are snapshotted from the inventory, never trusted from the client
    item_id: str
    category: str
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = ""
    is_vegetarian: bool = False
    is_vegan: bool = False
    is_gluten_free: bool = False
    is_lactose_free: bool = False
    custom_dietary_restrictions: List[str] = []


class Discount(BaseModel):
    type: Literal["percentage", "fixed"] = "fixed"
    value: float = Field(default=0, ge=0)


class OrderCreate(BaseModel):
    items: List[OrderItemIn]
    order_type: OrderType = "table"
    map_id: Optional[str] = None
    table_id: Optional[str] = None
    waiter: Optional[str] = None
    discount: Optional[Discount] = None
    special_requests: Optional[str] = None
    dietary_restrictions: List[str] = []
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


class AddItemsRequest(BaseModel):
    items: List[OrderItemIn]


class ItemStatusUpdate(BaseModel):
    status: ItemStatus


class ItemQuantityUpdate(BaseModel):
    quantity: int = Field(ge=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class CloseOrderRequest(BaseModel):
    payment_method: Optional[str] = None

    @field_validator("payment_method")
    @classmethod
    def strip_method(cls, v):
        return v.strip() if isinstance(v, str) else v


class PaymentInfo(BaseModel):
    method: Optional[str] = None
    amount: Optional[float] = None
    processed_at: Optional[datetime] = None


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_number: int
    user_id: Optional[int] = None
    items: List[OrderItemRead] = []
    subtotal: float
    discount: float
    total: float
    status: str
    order_type: str
    table_id: Optional[str] = None
    map_id: Optional[str] = None
    table_number: Optional[int] = None
    waiter: Optional[str] = None
    payment_info: Optional[PaymentInfo] = None
    special_requests: Optional[str] = None
    dietary_restrictions: List[str] = []
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class OrderActionResult(BaseModel):
    order: OrderRead
    # stock problems that did not block the action
    warnings: List[str] = []
