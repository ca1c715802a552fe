import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-entropy-0123456789")

from app.domain.chat import notifications, service as chat_service
from app.infra import documents, postgres
from app.infra.auth import JWTCredentialVerifier, set_credential_verifier
from app.main import app
from app.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
    from app.infra.redis import redis_client, set_redis_client

    original = redis_client.client
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)
        await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
    async def _noop():
        return None

    monkeypatch.setattr(postgres, "init_pool", _noop)
    monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
    """Ensure a consistent test environment.

    API tests authenticate via X-User-Id headers, which are only accepted in dev mode.
    """
    original_env = settings.environment
    original_store = settings.document_store
    settings.environment = "dev"
    settings.document_store = "memory"
    try:
        yield
    finally:
        settings.environment = original_env
        settings.document_store = original_store


@pytest_asyncio.fixture(autouse=True)
async def store():
    """A fresh in-memory document store wired into the chat service for each test."""
    memory = documents.InMemoryDocumentStore()
    documents.set_document_store(memory)
    set_credential_verifier(JWTCredentialVerifier())
    chat_service.set_service(chat_service.ChatService())
    try:
        yield memory
    finally:
        await notifications.drain()
        documents.set_document_store(None)


@pytest_asyncio.fixture
async def api_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
