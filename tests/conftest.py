import asyncio
import uuid

import pytest
import pytest_asyncio
from fastapi import WebSocketDisconnect
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ServerSelectionTimeoutError

from chatapp.repositories.message_repository import MessageRepository
from chatapp.repositories.user_repository import UserRepository


@pytest.fixture
def db():
    """Fresh in-memory MongoDB database per test."""
    return AsyncMongoMockClient()[f"chat_test_{uuid.uuid4().hex[:8]}"]


@pytest.fixture
def message_repo(db):
    return MessageRepository(db)


@pytest.fixture
def user_repo(db):
    return UserRepository(db)


@pytest_asyncio.fixture
async def users(user_repo):
    ids = {}
    for name in ("alice", "bob", "carol"):
        ids[name] = await user_repo.create_user(
            email=f"{name}@mail.com",
            hashed_password="not-a-real-hash",
            full_name=name.capitalize(),
            bio=f"{name}'s bio",
        )
    return ids


class RecordingHandle:
    """Stand-in for a live session: records what gets pushed to it."""

    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.events = []

    def emit(self, event, data):
        self.events.append((event, data))
        return self.accept


class FakeWebSocket:
    """Minimal websocket double driven by a queue of inbound text frames."""

    def __init__(self) -> None:
        self.accepted = False
        self.sent = []
        self.closed_with = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_text(self):
        item = await self._incoming.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    async def close(self, code: int = 1000):
        self.closed_with = code

    def feed(self, text: str) -> None:
        self._incoming.put_nowait(text)

    def hang_up(self) -> None:
        self._incoming.put_nowait(None)


class UnreachableCollection:
    """Collection whose every driver call fails as if the server is down."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("localhost:27017: connection refused")

        return fail


class UnreachableDatabase:

    def __getitem__(self, name):
        return UnreachableCollection()

    def get_collection(self, name):
        return UnreachableCollection()
