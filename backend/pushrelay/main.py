import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pushrelay.core.config import settings
from pushrelay.core.database import create_tables
from pushrelay.core.exceptions import (
    ConfigurationInvalid,
    ConfigurationMissing,
    InvalidSubscription,
    SubscriptionNotFound,
)
from pushrelay.core.vapid import check_signing_configuration
from pushrelay.api.v1.push import router as push_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Tabellen beim Start anlegen (SQLite / lokale Entwicklung)
    await create_tables()
    # Fehlendes Signiermaterial wird hier gemeldet; Push-Endpunkte antworten dann mit 500
    check_signing_configuration()
    yield


app = FastAPI(
    title="pushrelay API",
    description="Web-Push-Zustellung für Projekte und Tickets",
    version="1.0.0",
    lifespan=lifespan,
    # Swagger UI nur in Entwicklung – in Produktion DEBUG=false setzen
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidSubscription)
async def invalid_subscription_handler(request: Request, exc: InvalidSubscription):
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": "invalid_subscription", "reason": exc.reason},
    )


@app.exception_handler(ConfigurationMissing)
async def configuration_missing_handler(request: Request, exc: ConfigurationMissing):
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "configuration_missing", "missing": exc.missing},
    )


@app.exception_handler(ConfigurationInvalid)
async def configuration_invalid_handler(request: Request, exc: ConfigurationInvalid):
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "configuration_invalid", "field": exc.field, "reason": exc.reason},
    )


@app.exception_handler(SubscriptionNotFound)
async def subscription_not_found_handler(request: Request, exc: SubscriptionNotFound):
    return JSONResponse(
        status_code=404,
        content={"ok": False, "error": "subscription_not_found", "id": exc.subscription_id},
    )


API_PREFIX = "/api/v1"

app.include_router(push_router, prefix=API_PREFIX)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "pushrelay", "version": "1.0.0"}
