"""StudyDeck HTTP app: session, deck, folder and stats routes over the keyed store."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from backend.api.deck_router import router as deck_router
from backend.api.folder_router import router as folder_router
from backend.api.session_router import router as session_router
from backend.api.stats_router import router as stats_router
from backend.config import settings
from backend.database import async_session, engine, init_db


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the store table before serving; release pooled connections on exit."""
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Adaptive spaced repetition study sessions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(deck_router)
app.include_router(folder_router)
app.include_router(stats_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Report whether the store database answers a trivial query."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok", "app": settings.app_name}
