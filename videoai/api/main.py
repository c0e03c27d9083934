from fastapi import APIRouter

from videoai.api.routes import videos, websocket

api_router = APIRouter()
api_router.include_router(videos.router)
api_router.include_router(websocket.router)
