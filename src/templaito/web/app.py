"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from templaito import __version__
from templaito.stages.scrape import Scraper


def create_app(scraper: Scraper | None = None) -> FastAPI:
    """Build the API app. ``scraper`` is the host application's product scraper."""
    app = FastAPI(title="Templaito", version=__version__)
    app.state.scraper = scraper

    from templaito.web.api import router as api_router
    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    async def _health():
        return {"status": "ok"}

    return app
