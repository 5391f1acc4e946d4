# backend/studyroom/db/mongo.py

import asyncio
import functools
import inspect
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from studyroom.core.config import settings
from studyroom.core.errors import StoreUnavailable
from studyroom.db.store import (
    Document,
    DocumentCallback,
    DocumentStore,
    ErrorCallback,
    Unsubscribe,
    split_server_timestamps,
)

logger = logging.getLogger(__name__)

client: Optional[AsyncIOMotorClient] = None
db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo():
    global client, db
    client = AsyncIOMotorClient(settings.MONGO_URI)
    db = client[settings.MONGO_DB_NAME]
    logger.info("MongoDB connected (db=%s)", settings.MONGO_DB_NAME)


async def close_mongo_connection():
    global client, db
    if client:
        client.close()
        logger.info("MongoDB connection closed")
    client = None
    db = None


def get_db() -> AsyncIOMotorDatabase:
    if db is None:
        raise RuntimeError("MongoDB not initialized. Did you call connect_to_mongo()?")
    return db


def _store_call(fn):
    """
    드라이버 예외(PyMongoError)를 StoreUnavailable로 변환.
    네트워크/권한 오류는 삼키지 않고 항상 호출자에게 전달합니다.
    """
    @functools.wraps(fn)
    async def wrapper(self, collection, *args, **kwargs):
        try:
            return await fn(self, collection, *args, **kwargs)
        except PyMongoError as e:
            logger.error("Mongo %s on '%s' failed: %s", fn.__name__, collection, e)
            raise StoreUnavailable(str(e)) from e
    return wrapper


async def _deliver(callback: Callable[[Any], Any], value: Any) -> None:
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class MongoDocumentStore(DocumentStore):
    """
    Motor 기반 DocumentStore 구현.

    - 서버 시간: $currentDate
    - 배열 추가: $push / $addToSet, 제거: $pull
    - 구독: change stream (replica set 필요)
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        self._db = database

    @staticmethod
    def _update_doc(fields: Document) -> Dict[str, Any]:
        plain, stamped = split_server_timestamps(fields)
        update: Dict[str, Any] = {}
        if plain:
            update["$set"] = plain
        if stamped:
            update["$currentDate"] = {k: True for k in stamped}
        return update

    @_store_call
    async def create_document(self, collection: str, fields: Document, doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or str(uuid.uuid4())
        # upsert 한 번으로 생성 + 서버 시간 기록을 같이 처리
        await self._db[collection].update_one(
            {"_id": doc_id},
            self._update_doc(fields),
            upsert=True,
        )
        return doc_id

    @_store_call
    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        return await self._db[collection].find_one({"_id": doc_id})

    @_store_call
    async def update_document(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        expect: Optional[Document] = None,
    ) -> bool:
        query = {"_id": doc_id, **(expect or {})}
        update = self._update_doc(fields)
        if not update:
            return await self._db[collection].count_documents(query, limit=1) > 0

        result = await self._db[collection].update_one(query, update)
        return result.matched_count > 0

    @_store_call
    async def increment_fields(self, collection: str, doc_id: str, amounts: Dict[str, float]) -> bool:
        result = await self._db[collection].update_one({"_id": doc_id}, {"$inc": amounts})
        return result.matched_count > 0

    @_store_call
    async def delete_document(self, collection: str, doc_id: str, expect: Optional[Document] = None) -> bool:
        result = await self._db[collection].delete_one({"_id": doc_id, **(expect or {})})
        return result.deleted_count > 0

    @_store_call
    async def append_to_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        element: Any,
        unique: bool = False,
        expect: Optional[Document] = None,
    ) -> bool:
        op = "$addToSet" if unique else "$push"
        result = await self._db[collection].update_one(
            {"_id": doc_id, **(expect or {})},
            {op: {field: element}},
        )
        if unique:
            # 이미 있던 원소면 modified_count == 0
            return result.modified_count > 0
        return result.matched_count > 0

    @_store_call
    async def remove_from_array_field(self, collection: str, doc_id: str, field: str, element: Any) -> bool:
        result = await self._db[collection].update_one({"_id": doc_id}, {"$pull": {field: element}})
        return result.matched_count > 0

    @_store_call
    async def query(
        self,
        collection: str,
        filters: Document,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        cursor = self._db[collection].find(filters)
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit)

    def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._watch(collection, doc_id, callback, on_error))

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _watch(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_error: Optional[ErrorCallback],
    ) -> None:
        col = self._db[collection]
        pipeline = [{"$match": {"documentKey._id": doc_id}}]
        try:
            async with col.watch(pipeline, full_document="updateLookup") as stream:
                # 구독 직후 현재 상태 1회 전달
                await _deliver(callback, await col.find_one({"_id": doc_id}))
                async for change in stream:
                    if change.get("operationType") == "delete":
                        await _deliver(callback, None)
                    else:
                        await _deliver(callback, change.get("fullDocument"))
        except PyMongoError as e:
            logger.error("Change stream for %s/%s stopped: %s", collection, doc_id, e)
            if on_error is None:
                raise StoreUnavailable(str(e)) from e
            await _deliver(on_error, StoreUnavailable(str(e)))

    async def ping(self) -> None:
        try:
            await self._db.command("ping")
        except PyMongoError as e:
            raise StoreUnavailable(str(e)) from e


def get_store() -> MongoDocumentStore:
    return MongoDocumentStore(get_db())
