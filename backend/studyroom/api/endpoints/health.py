# backend/studyroom/api/endpoints/health.py

from fastapi import APIRouter, Depends

from studyroom.api.deps import get_store
from studyroom.core.errors import StoreUnavailable
from studyroom.db.store import DocumentStore

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(store: DocumentStore = Depends(get_store)):
    """
    [운영] 헬스 체크
    - 서버 생존 여부 + 스토어(Mongo) 연결 여부를 빠르게 확인하기 위한 엔드포인트
    """
    store_ok = False
    store_error = None

    try:
        await store.ping()
        store_ok = True
    except StoreUnavailable as e:
        store_error = str(e)

    return {
        "status": "ok" if store_ok else "degraded",
        "store": store_ok,
        "store_error": store_error,
    }
