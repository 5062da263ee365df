from fastapi import APIRouter

from app.api.routes import device
from app.api.routes import notifications
from app.api.routes import venues

api_router = APIRouter(prefix="/v1")

api_router.include_router(venues.router, prefix="/venues", tags=["venues"])
api_router.include_router(device.router, prefix="/device", tags=["device"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
