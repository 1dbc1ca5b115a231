"""
Brokerage API application factory.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import Authenticator, BearerTokenAuthenticator, tokens_from_env
from api.routers import health, portfolio, trade, wallet
from api.routers import notifications as notification_routes
from core.config import AppConfig
from database.engine import Database
from execution_engine.errors import TradingError
from execution_engine.execution_service import EventPublisher, TradeExecutionService
from notifications.dispatcher import PostCommitDispatcher
from notifications.in_app import NotificationWriter
from notifications.mailer import EmailNotifier

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Failed to execute trade"


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return f"Invalid request: {location}: {first.get('msg')}" if location else f"Invalid request: {first.get('msg')}"


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TradingError)
    async def trading_error_handler(request: Request, exc: TradingError):
        if exc.http_status >= 500:
            # Internal faults keep their detail in the log only
            logger.error(f"Internal trading error on {request.method} {request.url.path}: [{exc.code}] {exc.message}")
            return JSONResponse(status_code=exc.http_status, content={"error": INTERNAL_ERROR_MESSAGE, "code": exc.code})
        return JSONResponse(status_code=exc.http_status, content={"error": exc.message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _first_validation_message(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    config: Optional[AppConfig] = None,
    database: Optional[Database] = None,
    authenticator: Optional[Authenticator] = None,
    publisher: Optional[EventPublisher] = None,
) -> FastAPI:
    """
    Build the API.

    A database passed in is owned by the caller; otherwise the app
    opens one on startup and closes it on shutdown. Without a
    publisher, trades fan out to in-app notifications and email.
    """
    config = config or AppConfig.from_env()
    owns_database = database is None
    if database is None:
        database = Database(config.database)

    dispatcher: Optional[PostCommitDispatcher] = None
    if publisher is None:
        dispatcher = PostCommitDispatcher(
            [NotificationWriter(database), EmailNotifier(database, config.email)],
            config.dispatch,
        )
        publisher = dispatcher

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            database.open()
            database.initialize()
        yield
        if dispatcher is not None:
            dispatcher.shutdown()
        if owns_database:
            database.close()

    app = FastAPI(
        title="Brokerage Trading API",
        description="Market buy execution, wallets, portfolios and notifications.",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS (Allow local frontend development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.database = database
    app.state.authenticator = authenticator or BearerTokenAuthenticator(tokens_from_env().get)
    app.state.execution_service = TradeExecutionService(database, config.exchange, publisher)

    install_exception_handlers(app)

    # Include Routers
    app.include_router(health.router)
    app.include_router(trade.router)
    app.include_router(wallet.router)
    app.include_router(portfolio.router)
    app.include_router(notification_routes.router)

    return app
