from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime


class CategoryCreate(BaseModel):
    name: str
    id: Optional[str] = None


class CategoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class InventoryItemCreate(BaseModel):
    name: str
    quantity: Optional[int] = Field(default=None, ge=0)
    min_quantity: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = "Un"
    price: float = Field(default=0, ge=0)
    supplier: Optional[str] = None
    description: Optional[str] = None


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = None
    # present so a changed category can be rejected explicitly
    category: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    min_quantity: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[str] = None
    description: Optional[str] = None


class AddStockRequest(BaseModel):
    quantity: int = Field(gt=0)


class InventoryItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category: str
    name: str
    quantity: Optional[int] = None
    min_quantity: Optional[int] = None
    unit: str
    price: float
    supplier: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("price", mode="before")
    @classmethod
    def as_float(cls, v):
        return float(v or 0)
