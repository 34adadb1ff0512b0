"""Shared fixtures: in-memory stores and a recording connection.

The doubles subclass the real stores so id parsing and model handling stay
the production code paths; only the Mongo round trips are replaced.
"""
import itertools

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from chatrelay.app import create_app
from chatrelay.broadcaster import Broadcaster
from chatrelay.config import Settings
from chatrelay.errors import StorageError
from chatrelay.models import BlobInfo
from chatrelay.stores import BlobStore, MessageStore


class InMemoryMessageStore(MessageStore):
    def __init__(self):
        self.docs = []
        self.fail_with = None
        self._seq = itertools.count()

    async def ensure_indexes(self):
        pass

    async def insert(self, message):
        if self.fail_with:
            raise StorageError(self.fail_with)
        stored = message.model_copy(update={'id': str(ObjectId())})
        self.docs.append((next(self._seq), stored))
        return stored

    async def page(self, room, skip, limit):
        if self.fail_with:
            raise StorageError(self.fail_with)
        rows = sorted((d for d in self.docs if d[1].room == room),
                      key=lambda d: (d[1].timestamp, d[0]), reverse=True)
        return [m for _, m in rows[skip:skip + limit]]


class InMemoryBlobStore(BlobStore):
    def __init__(self, chunk_size=4):
        self.files = {}
        self.chunk_size = chunk_size
        self.fail_store = None
        self.fail_describe = None
        self.fail_read_at = None

    async def store(self, filename, data, content_type=None):
        if self.fail_store:
            raise StorageError(self.fail_store)
        oid = ObjectId()
        self.files[oid] = (filename, bytes(data), content_type)
        return str(oid)

    async def describe(self, file_id):
        if self.fail_describe:
            raise StorageError(self.fail_describe)
        if file_id not in self.files:
            return None
        filename, data, content_type = self.files[file_id]
        return BlobInfo(id=str(file_id), filename=filename, length=len(data),
                        content_type=content_type)

    async def stream(self, file_id):
        _, data, _ = self.files[file_id]
        for i, start in enumerate(range(0, len(data), self.chunk_size)):
            if self.fail_read_at == i:
                raise StorageError("chunk missing")
            yield data[start:start + self.chunk_size]


class RecordingConnection:
    def __init__(self, conn_id):
        self.id = conn_id
        self.sent = []

    async def send(self, event, data=None):
        self.sent.append((event, data))

    def events(self, name):
        return [d for e, d in self.sent if e == name]


@pytest.fixture
def message_store():
    return InMemoryMessageStore()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def broadcaster(message_store):
    return Broadcaster(message_store)


@pytest.fixture
def connect(broadcaster):
    def _connect(conn_id):
        conn = RecordingConnection(conn_id)
        broadcaster.connect(conn)
        return conn
    return _connect


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def client(settings, message_store, blob_store):
    app = create_app(settings, message_store=message_store, blob_store=blob_store)
    with TestClient(app) as c:
        yield c
