from fastapi import APIRouter

from .endpoints import health, moderation, observability, rewards

api_router = APIRouter()
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(rewards.router)
api_router.include_router(moderation.router)
api_router.include_router(observability.router)
