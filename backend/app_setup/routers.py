"""
Registre central des routers (web, API v1, health).
- Web: pages de retour paiement (/payment/*)
- API v1: packages, payments, credits
- Health: health_router
"""
from fastapi import FastAPI
from backend.catalog import views as catalog_views
from backend.credits import views as credits_views
from backend.payments import views as payments_views
from backend.payments.pages import web_router as payment_pages_router
from backend.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    """
    Agrège tous les routers de l'application.
    - L'ordre n'a pas d'impact sauf conflits de chemins (évités par préfixes).
    """
    # Pages web (HTML)
    app.include_router(payment_pages_router)
    # API v1
    app.include_router(catalog_views.router)
    app.include_router(payments_views.router)
    app.include_router(credits_views.router)
    # Health & monitoring
    app.include_router(health_router)
