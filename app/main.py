from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import logging
from fastapi import FastAPI
from dotenv import load_dotenv

from app.api.routes import api_router
from app.config.settings import get_settings
from app.db.base import init_db


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    load_dotenv()
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    yield


app = FastAPI(title=get_settings().app_name, lifespan=lifespan)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Basic health endpoint."""
    return {"status": "ok"}


app.include_router(api_router)
