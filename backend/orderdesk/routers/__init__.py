"""
API routers package.
"""
from orderdesk.routers.health import router as health_router
from orderdesk.routers.offers import router as offers_router
from orderdesk.routers.orders import router as orders_router
from orderdesk.routers.payments import router as payments_router
from orderdesk.routers.settings import delivery_router
from orderdesk.routers.settings import router as settings_router

__all__ = [
    "health_router",
    "orders_router",
    "offers_router",
    "delivery_router",
    "payments_router",
    "settings_router",
]
