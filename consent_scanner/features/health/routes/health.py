from fastapi import APIRouter, status

from consent_scanner.platform.config import settings
from consent_scanner.platform.response import api_response

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check():
    return api_response(
        data={"status": "ok", "service": settings.APP_NAME, "queue": settings.QUEUE_TYPE},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
