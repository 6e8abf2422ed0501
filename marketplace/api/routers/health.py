# marketplace/api/routers/health.py
from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    return {"status": "ok", "maintenance": getattr(request.app.state, "maintenance_mode", "off")}
