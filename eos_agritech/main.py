"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from eos_agritech.config import settings
from eos_agritech.domain.models import CloudFilters
from eos_agritech.infrastructure.eos_api_client import EosApiClient
from eos_agritech.infrastructure.proxy_client import InProcessProxy, RemoteProxyClient
from eos_agritech.infrastructure.session_store import SessionStore
from eos_agritech.middleware.error_handler import ErrorHandlerMiddleware
from eos_agritech.services.application.eos_proxy_service import EosProxyService
from eos_agritech.services.application.field_analysis_service import FieldAnalysisService
from eos_agritech.services.application.summary_fetcher import SummaryFetcher
from eos_agritech.api.v1.routers import eos_proxy, fields, session

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rate limiter, applied to every route by SlowAPIMiddleware
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_requests}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Builds the EOS client, the services and the session store and keeps them
    on ``app.state`` for the dependency factories.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Summary fetcher: max_attempts={settings.summary_max_attempts}, "
                f"rate_limit_retries={settings.summary_max_rate_limit_retries}, "
                f"deadline={settings.summary_deadline_seconds}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")
    if not settings.eos_api_key:
        logger.warning("No EOS API key configured; live requests will fail until EOS_DATA_API_KEY is set")

    api_client = EosApiClient.from_settings(settings)
    proxy_service = EosProxyService(
        api_client,
        fallback_filters=CloudFilters(
            max_cloud_cover_in_aoi=settings.fallback_max_cloud_cover,
            exclude_cover_pixels=False,
            cloud_masking_level=0,
        ),
        default_max_cloud_cover=settings.default_max_cloud_cover,
    )

    remote_proxy = None
    if settings.eos_proxy_url:
        logger.info(f"Using remote eos-proxy at {settings.eos_proxy_url}")
        remote_proxy = RemoteProxyClient(settings.eos_proxy_url)
        transport = remote_proxy
    else:
        transport = InProcessProxy(proxy_service)

    session_store = SessionStore(settings.session_store_path)

    app.state.api_client = api_client
    app.state.proxy_service = proxy_service
    app.state.session_store = session_store
    app.state.field_analysis_service = FieldAnalysisService(
        SummaryFetcher(transport, settings),
        store=session_store,
    )

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await api_client.close()
    if remote_proxy is not None:
        await remote_proxy.close()
    session_store.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Field Analytics API on Earth-Observation satellite data

    This API turns a field boundary and a crop into vegetation, water-stress and
    weather insights computed from Sentinel-2 statistics and EOS weather data.

    ## Features

    - **EOS Proxy**: Vegetation, weather, summary and soil-moisture actions with
      concurrent statistics tasks and a tolerant-filter fallback
    - **Summary Fetching**: Up to four attempts with cloud-filter escalation and
      rate-limit backoff
    - **Field Analysis**: Health, water stress, irrigation, BBCH phenology,
      weather stress, field alerts and productivity
    - **Polygon Import**: KML and GeoJSON files, polygons sorted by area
    - **Session Store**: Last polygon, configuration and good summary per session
    - **Rate Limiting**: Protects the API from abuse

    ## Escalation

    1. Attempt 1 uses cloud filters optimised for the field's location and season
    2. Attempt 2 widens to the `permissive` profile
    3. Attempts 3 and 4 use the `very_permissive` profile
    4. Rate-limited attempts back off and are repeated, never skipped
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(eos_proxy.router, prefix="/api/v1")
app.include_router(fields.router, prefix="/api/v1")
app.include_router(session.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """
    Root endpoint for health check.

    Returns:
        Status message
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
    }
