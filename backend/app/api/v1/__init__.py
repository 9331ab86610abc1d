"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1 import ingest, recommendations, rules

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(ingest.router, prefix="/ingest", tags=["ingest"])
api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])
api_router.include_router(rules.router, prefix="/rules", tags=["rules"])
