# storefront/main.py
from fastapi import FastAPI
import logging
from contextlib import asynccontextmanager

from storefront.config import settings
from storefront.database import db
from storefront.api.routes import orders as order_routes
from storefront.middleware.cors_config import configure_cors
from storefront.middleware.request_context import add_request_context


logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context: run startup checks before the app starts serving,
    and allow for clean shutdown actions if needed later.
    """
    # --- startup logic ---
    logging.getLogger("storefront").setLevel(settings.LOG_LEVEL.upper())
    db.data_dir.mkdir(parents=True, exist_ok=True)
    for table in ("users", "products", "shipping_addresses"):
        path = db._file_path(table)
        if not path.exists():
            logger.warning("%s table not found at %s; run scripts/init_db.py to seed demo data.", table, path)
    logger.info("Storefront orders API using data dir %s (%s)", db.data_dir, settings.ENV)

    yield
    # --- shutdown logic (if needed) ---
    logger.info("Shutting down Storefront orders API")


app = FastAPI(title="Storefront Orders API", version="0.1.0", lifespan=lifespan)
configure_cors(app)
add_request_context(app)

app.include_router(order_routes.router)


@app.get("/", tags=["root"])
async def root():
    return {"status": "ok", "service": "Storefront Orders API"}
