"""Health endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/")
async def root(request: Request):
    return {"status": "ok", "provider": request.app.state.provider.value}


@router.get("/__health")
async def health(request: Request):
    return {"status": "healthy", "service": f"mockpay-{request.app.state.provider.value}"}
