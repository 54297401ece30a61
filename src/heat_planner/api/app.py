"""FastAPI application factory for the Heat Planner HTTP API."""

from __future__ import annotations

from fastapi import FastAPI, Request

from heat_planner import __version__
from heat_planner.config.schema import AppConfig
from heat_planner.db.repository import Repository
from heat_planner.planning.runner import PlanRunner


def create_app(
    config: AppConfig,
    repo: Repository,
    runner: PlanRunner,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Heat Planner",
        description="Spot-price aware water heater planning",
        version=__version__,
    )

    @app.middleware("http")
    async def disable_browser_cache(request: Request, call_next):
        response = await call_next(request)
        if request.method in {"GET", "HEAD"}:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    # Shared state for the routes
    app.state.config = config
    app.state.repo = repo
    app.state.runner = runner

    from heat_planner.api.routes import router

    app.include_router(router)
    return app
