"""Canopy FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from canopy.config import load_settings
from canopy.db.connection import Database
from canopy.generation.service import GenerationService
from canopy.providers.registry import clear_providers, describe_providers, register_from_env
from canopy.workspaces.router import get_generation_service, get_workspace_service
from canopy.workspaces.router import router as workspaces_router
from canopy.workspaces.service import WorkspaceService

logger = logging.getLogger(__name__)

settings = load_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("canopy").setLevel(settings.log_level.upper())

    db = await Database.connect(settings.db_path)

    service = WorkspaceService(db, settings)
    app.dependency_overrides[get_workspace_service] = lambda: service

    register_from_env()

    gen_service = GenerationService(service, settings)
    app.dependency_overrides[get_generation_service] = lambda: gen_service

    logger.info("Canopy started (db=%s)", settings.db_path)
    app.state.db = db
    yield

    clear_providers()
    await db.close()


app = FastAPI(
    title="Canopy",
    description="Editable conversation trees with fork-on-edit branching",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(workspaces_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}


@app.get("/api/providers")
async def providers() -> list[dict]:
    return describe_providers()
