"""
API routers - /api/*
"""

from .tables import router as tables_router
from .orders import router as orders_router
from .kitchen import router as kitchen_router
from .billing import router as billing_router
from .health import router as health_router

__all__ = ["tables_router", "orders_router", "kitchen_router", "billing_router", "health_router"]
