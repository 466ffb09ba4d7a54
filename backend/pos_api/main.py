"""
POS API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI

from pos_shared.config.settings import settings
from pos_shared.infrastructure.correlation import CorrelationIdMiddleware
from pos_api.core.lifespan import lifespan
from pos_api.routers import (
    billing_router,
    health_router,
    kitchen_router,
    orders_router,
    tables_router,
)


def create_app() -> FastAPI:
    app = FastAPI(
        title="POS Core API",
        description="Restaurant POS: tables, orders, kitchen tickets and billing",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # Request correlation for log lines
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(health_router)
    app.include_router(tables_router)
    app.include_router(orders_router)
    app.include_router(kitchen_router)
    app.include_router(billing_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pos_api.main:app", host="0.0.0.0", port=settings.rest_api_port)
