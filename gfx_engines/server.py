"""Aggregate app for the designer engines."""
from __future__ import annotations

from fastapi import FastAPI

from gfx_engines.designer.router import router as designer_router


def create_app() -> FastAPI:
    app = FastAPI(title="gfx-designer")
    app.include_router(designer_router)
    return app


app = create_app()
