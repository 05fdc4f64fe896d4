import logging
import threading
import time
from collections import defaultdict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, settings as default_settings
from app.core.context import AppContext
from app.core.errors import register_error_handlers
from app.db import session as db_session
from app.routes import auth as auth_routes
from app.routes import health
from app.routes import inventory as inventory_routes
from app.routes import live as live_routes
from app.routes import orders as orders_routes
from app.routes import reports as reports_routes
from app.routes import tables as tables_routes
from app.routes import users as users_routes

_req_logger = logging.getLogger("app.request")


class RequestCounter:
    """In-memory request counters per route (method + path template)."""

    def __init__(self):
        self.counts = defaultdict(int)
        self.total = 0
        self._lock = threading.Lock()

    def hit(self, key: str):
        with self._lock:
            self.counts[key] += 1
            self.total += 1
            return self.counts[key], self.total


def _install_request_logging(app: FastAPI, settings: Settings):
    counter = RequestCounter()
    app.state.request_counter = counter
    prefixes = [p.strip() for p in (settings.REQUEST_LOG_INCLUDE_PREFIXES or "").split(",") if p.strip()]
    every_n = max(settings.REQUEST_LOG_EVERY_N, 1)

    @app.middleware("http")
    async def request_count_middleware(request: Request, call_next):
        route = request.scope.get("route")
        key = f"{request.method} {getattr(route, 'path', None) or request.url.path}"
        count_val, global_count_val = counter.hit(key)
        if count_val % every_n == 0:
            _req_logger.info(f"Request count threshold reached: {key} -> {count_val} (global={global_count_val})")

        # SQLAlchemy listener increments this during the request
        db_count_token = db_session.request_db_query_count.set(0)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            per_req_db_count = db_session.request_db_query_count.get()
            db_session.request_db_query_count.reset(db_count_token)
        duration_ms = int((time.perf_counter() - start) * 1000)

        if settings.REQUEST_LOG_VERBOSE and any(request.url.path.startswith(p) for p in prefixes):
            qs = request.url.query
            path_qs = f"{request.url.path}?{qs}" if qs else request.url.path
            _req_logger.info(
                f"{request.method} {path_qs} -> {response.status_code} in {duration_ms}ms "
                f"| db_queries={per_req_db_count} route_count={count_val} global_count={global_count_val}"
            )
        return response


def create_app(context: AppContext = None) -> FastAPI:
    ctx = context or AppContext(default_settings)
    settings = ctx.settings

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
    _req_logger.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))

    app = FastAPI(
        title="Restaurant POS API",
        version="1.0.0",
        description="Pedidos, mesas, estoque, permissões e relatórios do restaurante",
        # We register both /path and /path/ on root endpoints instead of redirecting
        redirect_slashes=False,
    )
    app.state.context = ctx

    register_error_handlers(app)
    _install_request_logging(app, settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(auth_routes.router)
    app.include_router(users_routes.router)
    app.include_router(orders_routes.router)
    app.include_router(inventory_routes.router)
    app.include_router(tables_routes.router)
    app.include_router(reports_routes.router)
    app.include_router(live_routes.router)

    @app.on_event("startup")
    def on_startup():
        ctx.connect()

    @app.on_event("shutdown")
    def on_shutdown():
        ctx.disconnect()

    @app.get("/")
    def root():
        return {"status": "API rodando com sucesso 🚀"}

    return app


app = create_app()
