"""
FastAPI application for the ModelForge server.

This module creates the FastAPI app with:
- Schema routes: publish, discovery, single-model lookup
- Record routes for every active model under /api/data/{model}
- Identity taken from headers set by the upstream Identity service
- One JSON error shape for every ModelForgeError

Routes:
    POST   /api/models/publish          Admin only
    GET    /api/models
    GET    /api/models/{name}
    POST   /api/data/{model}
    GET    /api/data/{model}
    GET    /api/data/{model}/{record_id}
    PUT    /api/data/{model}/{record_id}
    DELETE /api/data/{model}/{record_id}
    GET    /health

Invariants:
    - Record routes resolve the model through the registry on every request
    - Error bodies are {"error", "error_code", "details"}; tracebacks never leak
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncGenerator, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..crud.dispatcher import CrudDispatcher, Operation
from ..errors import ModelForgeError, NotFoundError, PermissionDeniedError
from ..identity import Identity
from ..publish.orchestrator import PublishOrchestrator
from ..schema.registry import SchemaRegistry
from ..schema.types import Role
from .settings import HttpSettings

if TYPE_CHECKING:
    from ..main import Server

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ModelForge"])

STATUS_BY_CODE = {
    "VALIDATION_ERROR": 400,
    "UNKNOWN_FIELD": 400,
    "UNKNOWN_FIELD_TYPE": 400,
    "UNAUTHENTICATED": 401,
    "PERMISSION_DENIED": 403,
    "NOT_FOUND": 404,
    "TABLE_CONFLICT": 409,
    "UNIQUE_VIOLATION": 409,
    "PARTIAL_PUBLISH": 500,
    "STORAGE_ERROR": 503,
    "STORAGE_TIMEOUT": 504,
}


def _error_response(code: str, message: str, details: Optional[dict[str, Any]], status: int) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": message, "error_code": code, "details": details or {}},
    )


# --- Dependencies ---


def get_registry(request: Request) -> SchemaRegistry:
    """Get the Schema Registry from app state."""
    return request.app.state.server.registry


def get_dispatcher(request: Request) -> CrudDispatcher:
    return request.app.state.server.dispatcher


def get_orchestrator(request: Request) -> PublishOrchestrator:
    return request.app.state.server.orchestrator


def get_identity(request: Request) -> Identity:
    """Read the verified (user id, role) pair from request headers."""
    settings: HttpSettings = request.app.state.settings
    return Identity.from_claims(
        request.headers.get(settings.user_header),
        request.headers.get(settings.role_header),
    )


# --- Schema routes ---


@router.post("/api/models/publish", status_code=201)
async def publish_model(
    definition: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    orchestrator: PublishOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Validate, persist and activate a model definition."""
    if identity.role is not Role.ADMIN:
        raise PermissionDeniedError(
            identity.role.value, "publish", str(definition.get("name", "<model>"))
        )
    entry = await orchestrator.publish(definition)
    return {
        "message": f"Model {entry.name} published successfully.",
        "model": entry.definition.to_dict(),
    }


@router.get("/api/models")
async def list_models(
    identity: Identity = Depends(get_identity),
    registry: SchemaRegistry = Depends(get_registry),
) -> list[dict[str, Any]]:
    """All active model definitions."""
    return [definition.to_dict() for definition in registry.list()]


@router.get("/api/models/{name}")
async def get_model(
    name: str,
    identity: Identity = Depends(get_identity),
    registry: SchemaRegistry = Depends(get_registry),
) -> dict[str, Any]:
    entry = registry.lookup(name)
    if entry is None:
        raise NotFoundError(f"Model '{name}' not found", resource_type="model", resource_id=name)
    return entry.definition.to_dict()


# --- Record routes ---


@router.post("/api/data/{model}", status_code=201)
async def create_record(
    model: str,
    payload: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    dispatcher: CrudDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return await dispatcher.dispatch(model, Operation.CREATE, identity, payload=payload)


@router.get("/api/data/{model}")
async def list_records(
    model: str,
    identity: Identity = Depends(get_identity),
    dispatcher: CrudDispatcher = Depends(get_dispatcher),
) -> list[dict[str, Any]]:
    return await dispatcher.dispatch(model, Operation.LIST_ALL, identity)


@router.get("/api/data/{model}/{record_id}")
async def get_record(
    model: str,
    record_id: str,
    identity: Identity = Depends(get_identity),
    dispatcher: CrudDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return await dispatcher.dispatch(model, Operation.GET_BY_ID, identity, record_id=record_id)


@router.put("/api/data/{model}/{record_id}")
async def update_record(
    model: str,
    record_id: str,
    payload: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    dispatcher: CrudDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return await dispatcher.dispatch(
        model, Operation.UPDATE, identity, payload=payload, record_id=record_id
    )


@router.delete("/api/data/{model}/{record_id}", status_code=204)
async def delete_record(
    model: str,
    record_id: str,
    identity: Identity = Depends(get_identity),
    dispatcher: CrudDispatcher = Depends(get_dispatcher),
) -> Response:
    await dispatcher.dispatch(model, Operation.DELETE, identity, record_id=record_id)
    return Response(status_code=204)


# --- Application ---


def create_app(server: Server, settings: Optional[HttpSettings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        server: Server holding the registry, dispatcher and orchestrator;
            started and stopped by the app lifespan
        settings: HTTP settings (loaded from environment when omitted)
    """
    settings = settings or HttpSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage server component lifecycle."""
        await server.start()
        try:
            yield
        finally:
            await server.stop()

    app = FastAPI(
        title="ModelForge",
        description="Runtime-defined models with permission-checked CRUD.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.server = server
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ModelForgeError)
    async def modelforge_error_handler(request: Request, exc: ModelForgeError) -> JSONResponse:
        status = STATUS_BY_CODE.get(exc.code, 500)
        if status >= 500:
            logger.error(
                f"Request failed: {exc.message}",
                extra={"path": request.url.path, "error_code": exc.code},
            )
        return _error_response(exc.code, exc.message, exc.details, status)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
        return _error_response(
            "VALIDATION_ERROR",
            "Request body must be a JSON object",
            {"errors": errors},
            400,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled error: {exc}",
            exc_info=exc,
            extra={"path": request.url.path},
        )
        return _error_response("INTERNAL", "Unexpected server error", None, 500)

    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": "modelforge",
            "version": __version__,
            "models": len(server.registry),
        }

    return app
