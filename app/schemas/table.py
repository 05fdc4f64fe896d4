from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime


class TableEntry(BaseModel):
    id: str
    number: int
    name: Optional[str] = None
    seats: Optional[int] = None
    shape: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    status: str = "available"
    active_order_id: Optional[str] = None
    map_id: Optional[str] = None


class TableCreate(BaseModel):
    number: int = Field(ge=1)
    name: Optional[str] = None
    seats: Optional[int] = Field(default=None, ge=1)
    shape: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class TableUpdate(BaseModel):
    number: Optional[int] = Field(default=None, ge=1)
    name: Optional[str] = None
    seats: Optional[int] = Field(default=None, ge=1)
    shape: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class TableStatusUpdate(BaseModel):
    status: str


class TableMapCreate(BaseModel):
    name: str
    description: Optional[str] = None


class TableMapUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class TableMapRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    user_id: Optional[int] = None
    tables: List[TableEntry] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
