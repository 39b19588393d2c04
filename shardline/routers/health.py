from fastapi import APIRouter

from shardline import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "shardline",
        "port": settings.PORT,
    }
