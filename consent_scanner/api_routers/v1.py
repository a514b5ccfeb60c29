from fastapi import APIRouter

from consent_scanner.features.scanner.routes.scan_queue import router as scan_queue_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(scan_queue_router)
