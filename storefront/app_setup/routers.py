"""
Registre central des routers (API v1, admin, health).
- API v1: cart, checkout (session, webhook, statut), orders
- Admin: orders (liste, statut)
- Health: health_router
"""
from fastapi import FastAPI
from storefront.cart.views import router as cart_router
from storefront.checkout.views import router as checkout_router
from storefront.orders.views import router as orders_router, admin_router as admin_orders_router
from storefront.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(cart_router)
    app.include_router(checkout_router)
    app.include_router(orders_router)
    # Admin
    app.include_router(admin_orders_router)
    # Health & monitoring
    app.include_router(health_router)
