import os

from dotenv import load_dotenv

# A local .env next to the backend is authoritative for development.
load_dotenv()


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_list(value: str) -> list:
    return [p.strip() for p in (value or "").split(",") if p.strip()]


class Settings:
    """Lightweight settings loader using environment variables.

    Every value can be overridden by keyword, which is how the test suite
    builds an isolated in-memory configuration.
    """

    def __init__(self, **overrides):
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-to-a-secure-random-string")
        self.ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))
        # refresh token lifetime in days
        self.REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "14"))

        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./pos.db")

        self.APP_ENV: str = os.getenv("APP_ENV", os.getenv("ENV", "development")).lower()
        # Environment-aware pool defaults (can be overridden via env)
        dev = self.APP_ENV == "development"
        self.DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5" if dev else "10"))
        self.DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "2" if dev else "20"))
        self.DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "900" if dev else "1800"))  # seconds

        # Logging and monitoring controls
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.REQUEST_LOG_EVERY_N: int = int(os.getenv("REQUEST_LOG_EVERY_N", "100"))
        self.DB_LOG_EVERY_N: int = int(os.getenv("DB_LOG_EVERY_N", "50"))
        self.REQUEST_LOG_VERBOSE: bool = _as_bool(os.getenv("REQUEST_LOG_VERBOSE"))
        self.REQUEST_LOG_INCLUDE_PREFIXES: str = os.getenv(
            "REQUEST_LOG_INCLUDE_PREFIXES",
            "/orders,/inventory,/tables,/users,/reports",
        )

        self.CORS_ORIGINS: list = _as_list(
            os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
        )

        # Inventory categories whose items carry no stock count
        self.CATEGORIES_WITHOUT_STOCK: list = _as_list(
            os.getenv("CATEGORIES_WITHOUT_STOCK", "acompanhamentos,almoco,jantar")
        )
        # When true, an order is rejected if any item lacks stock
        self.STOCK_DEDUCTION_BLOCKING: bool = _as_bool(os.getenv("STOCK_DEDUCTION_BLOCKING"))

        # Push notifications (OneSignal); disabled while either is empty
        self.ONESIGNAL_APP_ID: str = os.getenv("ONESIGNAL_APP_ID", "")
        self.ONESIGNAL_API_KEY: str = os.getenv("ONESIGNAL_API_KEY", "")
        self.ONESIGNAL_API_URL: str = os.getenv(
            "ONESIGNAL_API_URL", "https://onesignal.com/api/v1/notifications"
        )
        self.PUSH_TIMEOUT_SECONDS: float = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)


settings = Settings()
