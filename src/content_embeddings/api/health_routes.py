from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    state = request.app.state
    vector_db = getattr(state, "vector_db", None)
    mirror_db = getattr(state, "mirror_db", None)
    return {
        "status": "ok",
        "vector_store": bool(vector_db and vector_db.is_initialized),
        "mirror_store": bool(mirror_db and mirror_db.is_initialized),
    }
