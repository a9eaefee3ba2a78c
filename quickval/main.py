import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Routers
from .routers.valuation import router as valuation_router
from .routers.sales_cache import router as sales_cache_router
from .routers.weights import router as weights_router

# Core modules
from .core.config import Settings, settings as default_settings
from .core.errors import StoreError
from .core.logging import configure_logging, CorrelationIdMiddleware
from .core.metrics import PromMiddleware, metrics_endpoint
from .core.store import build_store

# Services
from .data.providers import provider_chain, valuation_provider
from .models.openai_model import OpenAIReportWriter
from .services.aggregator import ProviderAggregator
from .services.jobs import JobOrchestrator
from .services.sales_cache import SuburbSalesCache
from .services.valuation_service import ValuationService
from .services.weights import WeightConfigurationStore

logger = logging.getLogger(__name__)

def build_services(app: FastAPI, settings: Settings) -> None:
    """
    Wire store → cache/weights → aggregator → valuation pipeline → job runner
    and hang them off app.state for the routers.
    """
    store = build_store(settings)
    sales_cache = SuburbSalesCache(store, ttl=timedelta(days=settings.SALES_CACHE_TTL_DAYS))
    weights = WeightConfigurationStore(store)
    aggregator = ProviderAggregator(
        provider_chain(settings),
        sales_cache,
        valuation_provider=valuation_provider(settings),
        min_comparables=settings.MIN_COMPARABLES,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
    writer = None
    if settings.OPENAI_API_KEY:
        writer = OpenAIReportWriter(settings.OPENAI_API_KEY, settings.OPENAI_MODEL, settings.OPENAI_MAX_TOKENS)
    service = ValuationService(aggregator, weights, writer=writer, currency=settings.DEFAULT_CURRENCY)

    app.state.store = store
    app.state.sales_cache = sales_cache
    app.state.weights = weights
    app.state.valuation = service
    app.state.report_writer = writer
    app.state.jobs = JobOrchestrator(
        store,
        service.evaluate,
        workers=settings.JOB_WORKERS,
        queue_size=settings.JOB_QUEUE_SIZE,
        job_timeout=settings.JOB_TIMEOUT_SECONDS,
        retention_seconds=settings.JOB_RETENTION_SECONDS,
        delivery_grace_seconds=settings.JOB_DELIVERY_GRACE_SECONDS,
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    build_services(app, settings)
    app.state.jobs.start()
    logger.info("Quick valuation service started (env=%s, providers=%s)", settings.ENV, settings.PROVIDER_MODE)
    try:
        yield
    finally:
        await app.state.jobs.stop()
        if app.state.report_writer is not None:
            await app.state.report_writer.close()
        await app.state.store.close()

def create_app(settings: Settings | None = None) -> FastAPI:
    """
    App factory so tests and ASGI servers can instantiate cleanly.
    """
    settings = settings or default_settings
    configure_logging()  # JSON logs with request/job ids

    app = FastAPI(
        title="Quick Property Valuation API",
        version="2.0.0",
        description="Comparable-sales property valuations run as background jobs.",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS: allow the front end to call the API.
    allow_origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",")] if settings.ALLOW_ORIGINS else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    # Observability middlewares
    app.add_middleware(CorrelationIdMiddleware)  # Adds/propagates X-Request-Id
    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)       # Records req/latency metrics

    @app.exception_handler(StoreError)
    async def store_unavailable(request: Request, exc: StoreError):
        logger.error("Store unavailable: %s", exc)
        return JSONResponse(status_code=503, content={"detail": "Storage backend unavailable"})

    # Meta routes
    @app.get("/v1/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    @app.get("/v1/ping", tags=["meta"])
    def ping():
        return {"pong": True}

    if settings.PROMETHEUS_ENABLED:
        # Standard Prometheus scrape endpoint
        app.add_route("/v1/metrics", metrics_endpoint, methods=["GET"])

    # Business routes
    app.include_router(valuation_router, prefix="/v1", tags=["evaluation"])
    app.include_router(sales_cache_router, prefix="/v1", tags=["sales-cache"])
    app.include_router(weights_router, prefix="/v1", tags=["weights"])

    return app

app = create_app()
