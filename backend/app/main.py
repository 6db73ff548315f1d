r"""backend\app\main.py

Main entrypoint for the FastAPI application.

The API exposes endpoints to generate dynamic price recommendations and
demand forecasts for perishable market products, to browse the product
catalog and to review stored results.  A health endpoint is also provided
for readiness/liveness checks.  Configuration is read from environment
variables and YAML files in `configs/`.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

# Load .env from repo root
BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(BASE_DIR / ".env")

from .api.v1 import demand, health, pricing, products
from .core.config import APP_VERSION, get_settings
from .core.database import get_database
from .core.errors import SmartMandiError
from .core.observability import RequestLoggingMiddleware, metrics_endpoint

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    database = get_database()
    database.create_all()
    LOGGER.info("SmartMandi API ready (predictor script=%s)", settings.model_script)
    yield
    database.dispose()


app = FastAPI(title="SmartMandi Pricing API", version=APP_VERSION, lifespan=lifespan)

origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-model-used", "x-request-id"],
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(SmartMandiError)
async def _smartmandi_error(request: Request, exc: SmartMandiError) -> JSONResponse:
    """Render domain errors in the same shape as ``HTTPException`` details."""

    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_payload()})


# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(pricing.router, prefix="/api/v1")
app.include_router(demand.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
