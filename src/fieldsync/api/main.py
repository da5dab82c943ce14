"""FastAPI application factory for the local status/queue API."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from fieldsync.app import FieldSyncApp


def get_field_app(request: Request) -> FieldSyncApp:
    """Dependency returning the composition root bound to this API."""
    return request.app.state.field_app


def create_app(field_app: Optional[FieldSyncApp] = None) -> FastAPI:
    """
    Build and return the FastAPI app.

    Run with:  uvicorn fieldsync.api.main:create_app --factory
    """
    from fieldsync.api.routes import audits, job_cards, sync as sync_routes

    field_app = field_app or FieldSyncApp.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_lifecycle = not field_app.initialized
        if owns_lifecycle:
            await field_app.initialize()
        yield
        if owns_lifecycle:
            await field_app.shutdown()

    app = FastAPI(
        title="Field Sync API",
        description="Offline queue and sync status for the field-operations client",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.field_app = field_app

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(audits.router, prefix="/audits", tags=["audits"])
    app.include_router(job_cards.router, prefix="/job-cards", tags=["job-cards"])

    return app
