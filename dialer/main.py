"""Main FastAPI application."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dialer.api import calls, credentials, health, webhooks
from dialer.core.logging import setup_logging
from dialer.db.database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging()
    await init_db()
    yield


app = FastAPI(
    title="Prospect Dialer",
    description="Outbound AI calling for real estate prospect lists",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(calls.router, tags=["calls"])
app.include_router(credentials.router, tags=["credentials"])
app.include_router(webhooks.voice.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(webhooks.media_stream.router, prefix="/webhooks", tags=["webhooks"])
