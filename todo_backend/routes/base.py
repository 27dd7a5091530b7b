from fastapi import APIRouter

APP_NAME = "todo-service"
APP_VERSION = "1.0.0"

router = APIRouter()

@router.get("/healthz")
@router.get("/health")
def health():
    return {"status": "ok"}

@router.get("/version")
def version():
    return {"app": APP_NAME, "version": APP_VERSION}
