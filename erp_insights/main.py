import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from erp_insights.core.cache import build_cache
from erp_insights.core.config import settings
from erp_insights.core.database import engine, create_tables
from erp_insights.core.erp.services import build_erp_services
from erp_insights.api.router import api_router

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s"
)
logger = logging.getLogger(__name__)


# Wire the ERP stack on startup, close the HTTP pool and DB engine on shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await create_tables()
    except Exception as e:
        logger.error(f"Could not create tables during startup: {e}")

    erp = build_erp_services(
        settings,
        cache=build_cache(settings.REDIS_URL),
        http_client=httpx.AsyncClient(),
    )
    app.state.erp = erp

    yield

    await erp.aclose()
    await engine.dispose()


app = FastAPI(title="ERP Insights API", lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Welcome to the ERP Insights API"}
