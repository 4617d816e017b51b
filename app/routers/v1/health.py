from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/health")
async def health_check(request: Request):
    # consumer is None when ingestion is disabled
    consumer = getattr(request.app.state, "consumer", None)
    return {
        "status": "ok",
        "consumer": consumer.is_ready() if consumer is not None else None,
    }
