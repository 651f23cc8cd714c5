from fastapi import APIRouter
from app.api.endpoints import generate, generate_video

api_router = APIRouter(prefix="/api")
api_router.include_router(generate.router, tags=["generate"])
api_router.include_router(generate_video.router, tags=["generate-video"])
