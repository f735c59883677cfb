"""
Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from llm_dispatch.config import AppConfig, get_current_config, validate_registry_config, validate_startup_config
from llm_dispatch.logging import LoggingMiddleware, get_logger, setup_logging
from llm_dispatch.models import (
    AdapterError,
    AdapterNotFoundError,
    AllAdaptersFailedError,
    CircuitOpenError,
    CompletionRequest,
    CompletionResponse,
    ConfigurationError,
    DispatchError,
    ErrorResponse,
    HealthStatus,
    StreamChunk,
    ValidationError,
)
from llm_dispatch.services.adapters import AdapterRegistry


VERSION = "0.1.0"
SERVICE_NAME = "llm-dispatch"

# Most specific first
ERROR_STATUS_CODES = (
    (AdapterNotFoundError, 404),
    (ValidationError, 400),
    (CircuitOpenError, 503),
    (AllAdaptersFailedError, 503),
    (AdapterError, 502),
    (ConfigurationError, 500),
)


def status_code_for(error: DispatchError) -> int:
    """HTTP status used to render a dispatch error."""
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


def get_registry(request: Request) -> AdapterRegistry:
    return request.app.state.registry


def create_app(
    config: Optional[AppConfig] = None,
    registry: Optional[AdapterRegistry] = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration. Loaded from the environment and
            validated at startup when omitted.
        registry: Adapter registry to serve from. Built from ``config`` when
            omitted.
    """
    app_config = config or get_current_config(validate=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        try:
            if config is None:
                validate_startup_config()

            setup_logging(
                environment=app_config.environment,
                log_level=app_config.api.log_level,
                enable_json=(app_config.environment.value == "production")
            )

            if getattr(app.state, "registry", None) is None:
                app.state.registry = AdapterRegistry(app_config.registry)

            logger = get_logger("main")
            logger.info(
                "Starting completion dispatch service",
                extra={
                    "environment": app_config.environment.value,
                    "debug_mode": app_config.debug,
                    "default_adapter_id": app.state.registry.default_adapter_id,
                    "adapter_count": len(app.state.registry.list()),
                    "api_host": app_config.api.host,
                    "api_port": app_config.api.port,
                    "startup": True,
                }
            )

        except Exception as e:
            # Use basic logging if structured logging setup fails
            logging.basicConfig(level=logging.ERROR)
            logging.error(f"Failed to initialize application: {e}", exc_info=e)
            raise

        yield

        get_logger("main").info("Shutting down completion dispatch service", extra={"shutdown": True})

    app = FastAPI(
        title="LLM Dispatch",
        description="Resilient multi-provider completion dispatch with retries, circuit breakers and fallback",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = app_config
    app.state.registry = registry
    app.state.config_loader = lambda: get_current_config(validate=False)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
        status_code = status_code_for(exc)
        body = ErrorResponse(
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details or None,
            request_id=getattr(request.state, "request_id", None),
        )

        log_method = get_logger("errors").error if status_code >= 500 else get_logger("errors").warning
        log_method(
            f"Request failed with {exc.error_code}",
            extra={
                "error_code": exc.error_code,
                "status_code": status_code,
                "path": request.url.path,
                "request_id": body.request_id,
            }
        )
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _register_routes(app: FastAPI) -> None:
    logger = get_logger("endpoints")

    @app.get("/")
    async def root(request: Request) -> Dict[str, Any]:
        """Root endpoint returning basic service information."""
        app_config: AppConfig = request.app.state.config
        return {
            "message": "LLM Dispatch",
            "version": VERSION,
            "status": "running",
            "environment": app_config.environment.value,
            "debug": app_config.debug,
        }

    @app.get("/health", response_model=HealthStatus)
    async def health_check(
        check_adapters: bool = Query(False, description="Probe every configured adapter"),
        registry: AdapterRegistry = Depends(get_registry)
    ) -> HealthStatus:
        """Service health, optionally including live adapter probes."""
        adapters = None
        status = "healthy"

        if check_adapters:
            adapters = await registry.health_check()
            healthy = sum(adapters.values())
            if adapters and healthy == 0:
                status = "unhealthy"
            elif healthy < len(adapters):
                status = "degraded"

        logger.info("Health check performed", extra={"endpoint": "health", "status": status})
        return HealthStatus(status=status, version=VERSION, adapters=adapters)

    @app.get("/adapters")
    async def list_adapters(registry: AdapterRegistry = Depends(get_registry)) -> Dict[str, Any]:
        """Configured adapters, without credentials."""
        return {
            "default_adapter_id": registry.default_adapter_id,
            "adapters": [adapter.public_dict() for adapter in registry.list()],
        }

    @app.get("/adapters/{adapter_id}/chain")
    async def adapter_chain(adapter_id: str, registry: AdapterRegistry = Depends(get_registry)) -> Dict[str, Any]:
        """Fallback chain headed by ``adapter_id`` with each entry's circuit state."""
        chain = registry.get_fallback_chain(adapter_id)
        return {
            "primary_adapter_id": adapter_id,
            "adapters": [status.model_dump() for status in chain.get_status()],
        }

    @app.post("/adapters/reload")
    async def reload_adapters(request: Request, registry: AdapterRegistry = Depends(get_registry)) -> Dict[str, Any]:
        """Reload the registry from the current environment."""
        loader: Callable[[], AppConfig] = request.app.state.config_loader
        fresh = loader()

        errors = validate_registry_config(fresh.registry)
        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(errors))

        pre_reload_health = await registry.reload(fresh.registry)
        request.app.state.config = fresh
        return {
            "status": "reloaded",
            "adapter_count": len(registry.list()),
            "default_adapter_id": registry.default_adapter_id,
            "pre_reload_health": pre_reload_health,
        }

    @app.post("/completions", response_model=CompletionResponse)
    async def create_completion(
        completion_request: CompletionRequest,
        adapter_id: Optional[str] = Query(None, description="Primary adapter; defaults to the registry default"),
        registry: AdapterRegistry = Depends(get_registry)
    ) -> CompletionResponse:
        """Single-shot completion through the primary adapter's fallback chain."""
        chain = registry.get_fallback_chain(adapter_id)
        return await chain.complete(completion_request)

    @app.post("/completions/stream")
    async def stream_completion(
        completion_request: CompletionRequest,
        adapter_id: Optional[str] = Query(None, description="Primary adapter; defaults to the registry default"),
        registry: AdapterRegistry = Depends(get_registry)
    ) -> StreamingResponse:
        """Streaming completion as newline-delimited JSON chunks."""
        chain = registry.get_fallback_chain(adapter_id)

        async def ndjson() -> AsyncIterator[str]:
            chunk: StreamChunk
            async for chunk in chain.stream(completion_request):
                yield chunk.model_dump_json(exclude_none=True) + "\n"

        return StreamingResponse(ndjson(), media_type="application/x-ndjson")


if __name__ == "__main__":
    import uvicorn

    # Load configuration for development server
    try:
        validate_startup_config()
        dev_config = get_current_config()

        uvicorn.run(
            "llm_dispatch.main:create_app",
            factory=True,
            host=dev_config.api.host,
            port=dev_config.api.port,
            reload=dev_config.debug,
            log_level=dev_config.api.log_level.value.lower(),
        )
    except Exception as e:
        print(f"Failed to start server: {e}")
        exit(1)
