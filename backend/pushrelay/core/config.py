from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Database – SQLite für lokale Entwicklung
    DATABASE_URL: str = "sqlite+aiosqlite:///./pushrelay.db"

    # Redis / Celery (Retry der Event-Trigger)
    REDIS_URL: str = "redis://localhost:6379/0"
    USE_CELERY: bool = False

    # VAPID – alle drei Werte sind Pflicht; leer = nicht konfiguriert.
    # Schlüsselpaar erzeugen: python generate_vapid_keys.py
    VAPID_SUBJECT: str = ""
    VAPID_PUBLIC_KEY: str = ""
    VAPID_PRIVATE_KEY: str = ""

    # Web Push Versand
    PUSH_DEFAULT_TTL: int = 60
    PUSH_DEFAULT_URGENCY: str = "high"
    PUSH_DISPATCH_TIMEOUT: float = 30.0
    PUSH_RETRY_DELAY: int = 60
    PUSH_DEFAULT_URL: str = "/"
    PUSH_ICON: str = "/icons/icon-192x192.png"
    PUSH_BADGE: str = "/icons/badge-72x72.png"

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
