from fastapi import APIRouter
from app.api.endpoints import offline

api_router = APIRouter()
api_router.include_router(offline.router, prefix="/offline", tags=["offline"])
