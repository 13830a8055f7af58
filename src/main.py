"""SellerWatch: eBay seller listing monitor.

FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from src.api.routes import router, get_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    logging.getLogger(__name__).info(
        "Monitoring sellers %s (query %r, store %s)",
        config.sellers, config.search_query, config.store_backend,
    )
    yield


app = FastAPI(
    title="SellerWatch",
    description="Monitors eBay seller listings and reports price, title, image and rating changes",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(router)
