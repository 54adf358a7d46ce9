"""
API v1 Router Module

All v1 endpoints are prefixed with /api/v1/

- POST /api/v1/generate - Run the ad generation pipeline
- GET  /api/v1/metrics  - Prometheus metrics
"""

from fastapi import APIRouter

from adgen.api.v1.generate import router as generate_router
from adgen.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(generate_router, prefix="/generate", tags=["generation"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
