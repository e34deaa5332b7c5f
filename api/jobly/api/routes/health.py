from fastapi import APIRouter

router = APIRouter()


@router.get("/")
@router.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness only; the database is not consulted."""
    return {"status": "ok"}
