"""Motor-backed message collection and GridFS blob storage."""
from typing import AsyncIterator, List, Optional
import io
import logging

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorGridFSBucket
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from gridfs.errors import NoFile

from .config import Settings
from .errors import BlobNotFound, InvalidFileId, StorageError
from .models import BlobInfo, ChatMessage

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (PyMongoError, OSError)


class MessageStore:
    def __init__(self, collection):
        self._collection = collection

    async def ensure_indexes(self):
        try:
            await self._collection.create_index([('room', ASCENDING), ('timestamp', DESCENDING)])
        except STORAGE_ERRORS as e:
            raise StorageError(str(e)) from e

    async def insert(self, message: ChatMessage) -> ChatMessage:
        try:
            result = await self._collection.insert_one(message.to_document())
        except STORAGE_ERRORS as e:
            raise StorageError(str(e)) from e
        return message.model_copy(update={'id': str(result.inserted_id)})

    async def page(self, room: str, skip: int, limit: int) -> List[ChatMessage]:
        """Most recent first; `_id` breaks timestamp ties in insertion order."""
        cursor = (self._collection.find({'room': room})
                  .sort([('timestamp', DESCENDING), ('_id', DESCENDING)])
                  .skip(skip)
                  .limit(limit))
        try:
            docs = await cursor.to_list(length=limit)
        except STORAGE_ERRORS as e:
            raise StorageError(str(e)) from e
        return [ChatMessage(**{**doc, '_id': str(doc['_id'])}) for doc in docs]


class BlobStore:
    def __init__(self, bucket: AsyncIOMotorGridFSBucket, chunk_size: int = 8192):
        self._bucket = bucket
        self.chunk_size = chunk_size

    @staticmethod
    def parse_id(raw: str) -> ObjectId:
        try:
            return ObjectId(raw)
        except (InvalidId, TypeError):
            raise InvalidFileId() from None

    async def store(self, filename: str, data: bytes, content_type: Optional[str] = None) -> str:
        metadata = {'contentType': content_type} if content_type else None
        try:
            file_id = await self._bucket.upload_from_stream(filename, io.BytesIO(data), metadata=metadata)
        except STORAGE_ERRORS as e:
            raise StorageError(str(e)) from e
        return str(file_id)

    async def describe(self, file_id: ObjectId) -> Optional[BlobInfo]:
        try:
            docs = await self._bucket.find({'_id': file_id}).to_list(length=1)
        except STORAGE_ERRORS as e:
            raise StorageError(str(e)) from e
        if not docs:
            return None
        doc = docs[0]
        return BlobInfo(
            id=str(doc['_id']),
            filename=doc.get('filename') or str(doc['_id']),
            length=doc.get('length', 0),
            content_type=(doc.get('metadata') or {}).get('contentType'),
        )

    async def stream(self, file_id: ObjectId) -> AsyncIterator[bytes]:
        try:
            grid_out = await self._bucket.open_download_stream(file_id)
        except NoFile:
            raise BlobNotFound() from None
        except STORAGE_ERRORS as e:
            raise StorageError(str(e)) from e
        try:
            while True:
                try:
                    chunk = await grid_out.read(self.chunk_size)
                except STORAGE_ERRORS as e:
                    raise StorageError(str(e)) from e
                if not chunk:
                    break
                yield chunk
        finally:
            # synchronous in motor, delegated to pymongo's GridOut
            grid_out.close()


class Mongo:
    """Owns the client and hands out the two stores."""

    def __init__(self, settings: Settings):
        self.client = AsyncIOMotorClient(settings.mongodb_uri)
        self.db = self.client[settings.database_name]
        self.messages = MessageStore(self.db[settings.messages_collection])
        self.blobs = BlobStore(
            AsyncIOMotorGridFSBucket(self.db, bucket_name=settings.uploads_bucket),
            chunk_size=settings.download_chunk_size,
        )

    async def ping(self) -> bool:
        try:
            await self.client.admin.command('ping')
        except STORAGE_ERRORS as e:
            logger.warning("MongoDB ping failed: %s", e)
            return False
        return True

    def close(self):
        self.client.close()
