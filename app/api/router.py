from fastapi import APIRouter

from app.api.routes import transfers

api_router = APIRouter()
api_router.include_router(transfers.router)
