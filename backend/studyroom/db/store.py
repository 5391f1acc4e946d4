# backend/studyroom/db/store.py

"""
코어가 사용하는 문서 스토어 인터페이스.

세션/프로필 로직은 이 인터페이스만 호출하고, 실제 구현(MongoDocumentStore)은
앱 lifespan에서 주입됩니다. 모든 실패는 StoreUnavailable로 올라옵니다.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

Document = Dict[str, Any]
# 문서가 삭제되면 None이 전달됩니다.
DocumentCallback = Callable[[Optional[Document]], Any]
Unsubscribe = Callable[[], None]
ErrorCallback = Callable[[Exception], Any]


class _ServerTimestamp:
    """쓰기 시점에 스토어가 자기 시계로 채우는 마커"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def server_timestamp() -> _ServerTimestamp:
    return SERVER_TIMESTAMP


def split_server_timestamps(fields: Document) -> Tuple[Document, List[str]]:
    """
    fields에서 SERVER_TIMESTAMP 마커가 붙은 키를 분리합니다.
    -> (일반 필드, 서버 시간으로 채울 키 목록)
    """
    plain = {}
    stamped = []
    for k, v in fields.items():
        if v is SERVER_TIMESTAMP:
            stamped.append(k)
        else:
            plain[k] = v
    return plain, stamped


class DocumentStore(ABC):

    @abstractmethod
    async def create_document(self, collection: str, fields: Document, doc_id: Optional[str] = None) -> str:
        """문서 생성 후 id 반환. doc_id가 없으면 uuid를 발급합니다."""

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        """문서 조회 ('_id' 포함). 없으면 None."""

    @abstractmethod
    async def update_document(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        expect: Optional[Document] = None,
    ) -> bool:
        """
        필드 단위 원자적 merge.
        expect가 주어지면 해당 필드 값이 모두 일치할 때만 반영합니다.
        반영 대상 문서가 있었으면 True.
        """

    @abstractmethod
    async def increment_fields(self, collection: str, doc_id: str, amounts: Dict[str, float]) -> bool:
        """숫자 필드 원자적 증가"""

    @abstractmethod
    async def delete_document(self, collection: str, doc_id: str, expect: Optional[Document] = None) -> bool:
        """expect 조건이 맞을 때만 삭제. 삭제했으면 True."""

    @abstractmethod
    async def append_to_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        element: Any,
        unique: bool = False,
        expect: Optional[Document] = None,
    ) -> bool:
        """
        배열 필드에 원소 추가 (동시 추가 시 서로 덮어쓰지 않음).
        unique=True면 이미 있는 원소는 추가하지 않고 False를 반환합니다.
        expect 조건이 맞지 않아도 False.
        """

    @abstractmethod
    async def remove_from_array_field(self, collection: str, doc_id: str, field: str, element: Any) -> bool:
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Document,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """
        filters: {필드: 값} 동등 비교. 배열 필드는 '포함' 비교,
        {"$in": [...]} 는 값 목록 중 하나와 일치.
        sort: [(필드, 1|-1)]
        """

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """
        문서 변경 구독. 현재 문서를 먼저 한 번 전달하고, 이후 변경마다 전체 문서를,
        삭제되면 None을 전달합니다. 반환값을 호출하면 구독 해제.

        구독이 스토어 오류로 끊기면 on_error에 StoreUnavailable이 전달되고
        더 이상 변경은 오지 않습니다.
        """

    @abstractmethod
    async def ping(self) -> None:
        ...
