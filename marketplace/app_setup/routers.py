"""
Registre central des routers (API v1, webhooks, health).
"""
from fastapi import FastAPI
from marketplace.payments import views as payments_views
from marketplace.cart import views as cart_views
from marketplace.sellers import views as sellers_views
from marketplace.webhooks import views as webhooks_views
from marketplace.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(payments_views.router)
    app.include_router(cart_views.router)
    app.include_router(sellers_views.router)
    # Webhooks processeur (signature uniquement)
    app.include_router(webhooks_views.router)
    # Health & monitoring
    app.include_router(health_router)
