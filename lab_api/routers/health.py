from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
async def health_check():
    """Liveness probe. Does not touch the cluster."""
    return "OK"
