"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from tandril.api.webhooks import router as webhooks_router
from tandril.api.oauth import router as oauth_router
from tandril.api.health import router as health_router
from tandril.api.inventory import router as inventory_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(oauth_router)
api_router.include_router(inventory_router)
api_router.include_router(health_router)
