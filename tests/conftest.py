from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.context import AppContext
from app.main import create_app
from app.models.inventory import InventoryCategory, InventoryItem
from app.models.table_map import TableMap
from app.models.user import RoleEnum, User
from app.services import auth as auth_service
from app.services.notifications import PushNotifier


class RecordingNotifier(PushNotifier):
    """Collects pushes instead of calling OneSignal."""

    def __init__(self, settings):
        super().__init__(settings)
        self.sent = []

    @property
    def enabled(self) -> bool:
        return True

    async def _post(self, payload: dict) -> None:
        self.sent.append({
            "title": payload["headings"]["pt"],
            "message": payload["contents"]["pt"],
            "data": payload["data"],
            "external_ids": payload.get("include_external_user_ids"),
        })


def make_settings(**overrides) -> Settings:
    values = dict(
        DATABASE_URL="sqlite:///:memory:",
        SECRET_KEY="test-secret",
        APP_ENV="test",
        LOG_LEVEL="WARNING",
        ONESIGNAL_APP_ID="",
        ONESIGNAL_API_KEY="",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def context(settings) -> AppContext:
    ctx = AppContext(settings, notifier=RecordingNotifier(settings))
    ctx.connect()
    try:
        yield ctx
    finally:
        ctx.disconnect()


@pytest.fixture()
def db_session(context) -> Session:
    db = context.db.session()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(context) -> TestClient:
    app = create_app(context)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def stocked(db_session: Session) -> dict:
    """Inventory with a stock-tracked beer, a soda and an untracked lunch dish."""
    db_session.add_all([
        InventoryCategory(id="cervejas", name="Cervejas"),
        InventoryCategory(id="refrigerantes", name="Refrigerantes"),
        InventoryCategory(id="almoco", name="Almoço"),
    ])
    db_session.flush()
    beer = InventoryItem(category="cervejas", name="Cerveja Original 600ml", quantity=10, min_quantity=4,
                         unit="Un", price=15.0)
    soda = InventoryItem(category="refrigerantes", name="Coca-Cola Lata", quantity=2, min_quantity=1,
                         unit="Un", price=6.5)
    dish = InventoryItem(category="almoco", name="Feijoada", quantity=None, min_quantity=None,
                         unit="Porção", price=42.0)
    db_session.add_all([beer, soda, dish])
    db_session.commit()
    return {"beer": beer, "soda": soda, "dish": dish}


@pytest.fixture()
def floor(db_session: Session) -> TableMap:
    table_map = TableMap(name="Salão", tables=[
        {"id": "t1", "number": 1, "name": "Mesa 1", "seats": 4, "status": "available",
         "active_order_id": None, "map_id": None},
        {"id": "t2", "number": 2, "name": "Mesa 2", "seats": 2, "status": "available",
         "active_order_id": None, "map_id": None},
    ])
    db_session.add(table_map)
    db_session.commit()
    return table_map


def create_user(db: Session, role: str, email: str = None) -> User:
    user = User(
        email=email or f"{role}@restaurante.com.br",
        username=role,
        display_name=role.capitalize(),
        senha_hash=auth_service.get_password_hash("segredo123"),
        papel=RoleEnum(role),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def auth_headers(db_session: Session, settings: Settings):
    """Factory: headers with a bearer token for a fresh user of ``role``."""
    def _headers(role: str) -> dict:
        user = db_session.query(User).filter(User.username == role).first() or create_user(db_session, role)
        token = auth_service.create_access_token({"sub": user.email}, settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def waiter_user(db_session: Session) -> User:
    return create_user(db_session, "waiter")
