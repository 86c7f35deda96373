from fastapi import APIRouter

from confbridge.api.v1.endpoints import conferences, status

api_v1_router = APIRouter()

api_v1_router.include_router(status.router, prefix="/status", tags=["status"])
api_v1_router.include_router(conferences.router, prefix="/conferences", tags=["conferences"])
