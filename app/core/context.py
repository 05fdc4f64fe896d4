import logging

from fastapi import Request

from app.core.config import Settings
from app.db.session import Database
from app.services.notifications import PushNotifier
from app.utils.pubsub import LiveFeed

logger = logging.getLogger(__name__)


class AppContext:
    """Owns every long-lived collaborator of the service.

    Built explicitly by ``create_app`` (or a test), connected on startup
    and disconnected on shutdown. Request handlers reach it through
    ``request.app.state.context``.
    """

    def __init__(self, settings: Settings, notifier: PushNotifier = None, live: LiveFeed = None):
        self.settings = settings
        self.db = Database(settings)
        self.notifier = notifier or PushNotifier(settings)
        self.live = live or LiveFeed()
        self.connected = False

    def connect(self):
        self.db.create_all()
        self.connected = True
        logger.info("Application context connected (db=%s, push=%s)",
                    self.db.engine.url.render_as_string(hide_password=True),
                    "on" if self.notifier.enabled else "off")

    def disconnect(self):
        self.live.close()
        self.db.dispose()
        self.connected = False
        logger.info("Application context disconnected")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_settings(request: Request) -> Settings:
    return request.app.state.context.settings
