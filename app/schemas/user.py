from pydantic import BaseModel, EmailStr, ConfigDict, field_validator
from typing import Optional, Literal
import datetime

Role = Literal["owner", "admin", "manager", "waiter", "chef", "barman"]


def _check_username(v):
    # usernames are lowercase only
    if v and any(c.isupper() for c in v):
        raise ValueError("Nome de usuário não pode conter letras maiúsculas")
    return v


class UserRegister(BaseModel):
    email: EmailStr
    password: str
    username: Optional[str] = None
    display_name: Optional[str] = None

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v):
        return _check_username(v)


class UserCreate(UserRegister):
    papel: Role = "waiter"


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v):
        return _check_username(v)


class RoleUpdate(BaseModel):
    papel: Role


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    username: Optional[str] = None
    display_name: Optional[str] = None
    papel: str
    status: str
    criado_em: Optional[datetime.datetime] = None

    @field_validator("papel", "status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    identifier: str
    password: str


class NotificationPreferences(BaseModel):
    new_orders: bool = True
    order_updates: bool = True
    inventory_alerts: bool = True
    system_announcements: bool = True
    daily_reports: bool = False
    email_notifications: bool = True
    push_notifications: bool = True
    sound_alerts: bool = True


class NotificationPreferencesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    new_orders: Optional[bool] = None
    order_updates: Optional[bool] = None
    inventory_alerts: Optional[bool] = None
    system_announcements: Optional[bool] = None
    daily_reports: Optional[bool] = None
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
    sound_alerts: Optional[bool] = None
