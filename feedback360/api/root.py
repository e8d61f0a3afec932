from fastapi import APIRouter

router = APIRouter()

@router.get("/")
def root():
    return {
        "name": "Feedback360 Engine",
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
    }
