"""Router aggregation for the HTTP surface."""

from fastapi import FastAPI

from . import cron, notifications, recurring_rules


def register_routers(app: FastAPI) -> None:
    """Attach all API routes to the FastAPI application."""

    app.include_router(recurring_rules.router, prefix="/api")
    app.include_router(notifications.router, prefix="/api")
    app.include_router(cron.router, prefix="/api")
