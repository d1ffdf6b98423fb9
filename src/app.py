"""Cartledger FastAPI application.

Composition root: settings, store, payment gateway and the engine components
are built here once and attached to ``app.state``.

Usage:
    uvicorn app:create_app --factory --app-dir src --host 0.0.0.0 --port 8000
"""

from dataclasses import dataclass
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from fulfillment.export import FulfillmentExporter
from identity.collaborators import AddressBook, IdentityDirectory
from ordering.cart.management import CartManager
from ordering.order.lifecycle import OrderLifecycleManager
from payments.gateway import PaymentGateway, build_gateway
from shared.config import Settings, load_settings
from shared.errors import (
    AuthenticationRequired,
    AuthorizationError,
    ConsistencyViolation,
    ExternalGatewayError,
    PreconditionError,
)
from shared.logging import add_context, clear_context, configure_logging
from shared.store import Store

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    store: Store
    gateway: PaymentGateway
    identities: IdentityDirectory
    carts: CartManager
    orders: OrderLifecycleManager
    exporter: FulfillmentExporter


def build_services(
    settings: Settings,
    store: Store | None = None,
    gateway: PaymentGateway | None = None,
) -> Services:
    store = store or Store(settings.database_uri)
    gateway = gateway or build_gateway(settings.gateway)
    return Services(
        settings=settings,
        store=store,
        gateway=gateway,
        identities=IdentityDirectory(store),
        carts=CartManager(store),
        orders=OrderLifecycleManager(store, gateway, settings, addresses=AddressBook(store)),
        exporter=FulfillmentExporter(store),
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
# Most specific first; Starlette resolves handlers along the exception's MRO.
_ERROR_RESPONSES = (
    (ValidationError, 400, "validation"),
    (AuthenticationRequired, 401, "unauthenticated"),
    (AuthorizationError, 403, "authorization"),
    (ObjectNotFoundError, 404, "not_found"),
    (PreconditionError, 409, "precondition"),
    (ExternalGatewayError, 502, "gateway_error"),
    (ConsistencyViolation, 500, "consistency_violation"),
)


def _error_handler(status_code: int, default_kind: str):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        kind = getattr(exc, "kind", default_kind)
        messages = exc.messages
        if status_code >= 500:
            logger.error("request_failed", kind=kind, messages=messages, path=request.url.path)
        else:
            logger.info("request_rejected", kind=kind, status_code=status_code, path=request.url.path)
        return JSONResponse(status_code=status_code, content={"error": kind, "messages": messages})

    return handler


def install_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    for error_class, status_code, default_kind in _ERROR_RESPONSES:
        app.add_exception_handler(error_class, _error_handler(status_code, default_kind))


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
def create_app(
    settings: Settings | None = None,
    store: Store | None = None,
    gateway: PaymentGateway | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(env=settings.env, log_dir=settings.log_dir)

    app = FastAPI(
        title="Cartledger API",
        description="Order and inventory consistency engine",
    )
    app.state.services = build_services(settings, store=store, gateway=gateway)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Bind per-request logging context."""
        clear_context()
        add_context(
            request_id=uuid4().hex[:12],
            method=request.method,
            path=request.url.path,
            user_id=request.headers.get("x-user-id"),
        )
        response = await call_next(request)
        logger.info("request_handled", status_code=response.status_code)
        return response

    install_error_handlers(app)

    from fulfillment.api.routes import fulfillment_router
    from ordering.api.routes import cart_router, order_router

    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(fulfillment_router)

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "env": settings.env})

    logger.info("app_created", env=settings.env, gateway=settings.gateway.provider)
    return app
