import uvicorn

from consent_scanner.platform.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "consent_scanner.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "local",
    )
