"""Push notifications and live-feed fan-out for domain events.

Order and inventory actions return plain event dicts; routes hand them to
``dispatch_events`` as a background task once the transaction committed.
Every event goes to the live feed. Events with a push text are sent only
to the users whose notification preferences opt in to that kind of event.
Pushes are fire-and-forget: a failure is logged and never retried.
"""
import logging
from typing import Iterable, List, Optional, Tuple

import httpx

from app.core.errors import ValidationError
from app.models.user import User, UserStatus

logger = logging.getLogger("app.notifications")

DEFAULT_PREFERENCES = {
    "new_orders": True,
    "order_updates": True,
    "inventory_alerts": True,
    "system_announcements": True,
    "daily_reports": False,
    "email_notifications": True,
    "push_notifications": True,
    "sound_alerts": True,
}

# which preference switches a push for each event type
EVENT_PREFERENCE = {
    "order.created": "new_orders",
    "order.status": "order_updates",
    "order.closed": "order_updates",
    "order.cancelled": "order_updates",
    "order.deleted": "order_updates",
    "stock.deduction_failed": "inventory_alerts",
    "stock.critical": "inventory_alerts",
}


def preferences_for(user: User) -> dict:
    prefs = dict(DEFAULT_PREFERENCES)
    stored = user.notification_preferences or {}
    prefs.update({k: bool(v) for k, v in stored.items() if k in DEFAULT_PREFERENCES})
    return prefs


def update_preferences(db, user: User, changes: dict) -> dict:
    unknown = set(changes) - set(DEFAULT_PREFERENCES)
    if unknown:
        raise ValidationError(f"Preferências desconhecidas: {', '.join(sorted(unknown))}")
    prefs = preferences_for(user)
    prefs.update({k: bool(v) for k, v in changes.items() if v is not None})
    # reassign so the JSON column is flagged dirty
    user.notification_preferences = prefs
    db.commit()
    return prefs


def push_audience(db, event_type: str) -> List[str]:
    """External user ids (``str(user.id)``) that should get a push for ``event_type``."""
    key = EVENT_PREFERENCE.get(event_type)
    users = db.query(User).filter(User.status == UserStatus.active).order_by(User.id).all()
    audience = []
    for user in users:
        prefs = preferences_for(user)
        if not prefs["push_notifications"]:
            continue
        if key and not prefs[key]:
            continue
        audience.append(str(user.id))
    return audience


class PushNotifier:
    """Sends pushes through the OneSignal REST API."""

    def __init__(self, settings):
        self.app_id = settings.ONESIGNAL_APP_ID
        self.api_key = settings.ONESIGNAL_API_KEY
        self.api_url = settings.ONESIGNAL_API_URL
        self.timeout = settings.PUSH_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.api_key)

    def build_payload(self, title: str, message: str, data: Optional[dict] = None,
                      external_ids: Optional[List[str]] = None) -> dict:
        payload = {
            "app_id": self.app_id,
            "headings": {"en": title, "pt": title},
            "contents": {"en": message, "pt": message},
            "data": data or {},
        }
        if external_ids is None:
            payload["included_segments"] = ["Subscribed Users"]
        else:
            payload["include_external_user_ids"] = list(external_ids)
        return payload

    async def send(self, title: str, message: str, data: Optional[dict] = None,
                   external_ids: Optional[List[str]] = None) -> bool:
        if not self.enabled:
            logger.debug("Push disabled; skipping '%s'", title)
            return False
        if external_ids is not None and not external_ids:
            logger.debug("Nobody opted in to '%s'", title)
            return False
        payload = self.build_payload(title, message, data, external_ids)
        try:
            await self._post(payload)
        except httpx.HTTPError as exc:
            logger.warning("Push '%s' failed: %s", title, exc)
            return False
        return True

    async def _post(self, payload: dict) -> None:
        headers = {"Authorization": f"Basic {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.api_url, json=payload, headers=headers)
            resp.raise_for_status()


def _money(value) -> str:
    return f"R$ {float(value or 0):.2f}".replace(".", ",")


def _where(event: dict) -> str:
    number = event.get("table_number")
    return f"Mesa {number}" if number else "Balcão"


def push_message_for(event: dict) -> Optional[Tuple[str, str]]:
    """Title and body of the push for an event, or None when it is feed-only."""
    kind = event.get("type")
    if kind == "order.created":
        return "Novo Pedido", f"{_where(event)} - Total: {_money(event.get('total'))}"
    if kind == "order.status":
        return "Pedido atualizado", f"Pedido #{event.get('order_number')} ({_where(event)}): {event.get('status')}"
    if kind == "order.closed":
        return "Pedido pago", f"Pedido #{event.get('order_number')} - {_money(event.get('total'))}"
    if kind == "order.cancelled":
        return "Pedido cancelado", f"Pedido #{event.get('order_number')} ({_where(event)}) foi cancelado"
    if kind == "order.deleted":
        return "Pedido excluído", f"Pedido #{event.get('order_number')} foi excluído"
    if kind == "stock.deduction_failed":
        return "Falha no estoque", event.get("message") or "Não foi possível baixar o estoque"
    if kind == "stock.critical":
        return "Estoque crítico", f"{event.get('name')}: restam {event.get('quantity')} {event.get('unit') or ''}".strip()
    return None


async def dispatch_events(ctx, events: Iterable[dict]) -> None:
    """Publish ``events`` on the context's live feed and push the ones users opted in to."""
    events = list(events)
    for event in events:
        await ctx.live.publish(event)

    pushes = [(event, push_message_for(event)) for event in events]
    pushes = [(event, message) for event, message in pushes if message]
    if not pushes or not ctx.notifier.enabled:
        return

    db = ctx.db.session()
    try:
        audiences = [push_audience(db, event.get("type")) for event, _ in pushes]
    finally:
        db.close()

    for (event, (title, body)), audience in zip(pushes, audiences):
        await ctx.notifier.send(title, body, {"type": event.get("type"), "order_id": event.get("order_id")},
                                external_ids=audience)
