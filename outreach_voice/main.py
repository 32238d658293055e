"""Main FastAPI application."""
import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI

from outreach_voice.api import audio, calls, events, health
from outreach_voice.api.webhooks import voice
from outreach_voice.core.dependencies import get_audio_store, get_broadcaster
from outreach_voice.core.logging import setup_logging
from outreach_voice.db.database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    sweeper = asyncio.create_task(get_audio_store().run_sweeper())
    yield
    # Shutdown
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await get_broadcaster().close()


app = FastAPI(
    title="Outreach Voice",
    description="Real-time voice conversation orchestrator for sales outreach calls",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(calls.router, tags=["calls"])
app.include_router(audio.router, tags=["audio"])
app.include_router(events.router)


@app.get("/")
async def root():
    return {
        "message": "Outreach Voice API",
        "version": "0.1.0",
    }
