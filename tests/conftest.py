import itertools
import math
import uuid
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from tenantbot.config.settings import get_settings
from tenantbot.core.database import Database
from tenantbot.core.openai_client import CompletionResult, StreamChunk
from tenantbot.core.supabase_client import set_client
from tenantbot.models.schemas import OrgRole, TenantContext


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """In-memory stand-in for a postgrest query builder over one table"""

    def __init__(self, store: "FakeSupabase", table: str):
        self.store = store
        self.table = table
        self.filters = []
        self.operation = "select"
        self.payload = None
        self.order_by = []
        self.max_rows = None

    def select(self, *columns, **kwargs):
        self.operation = "select"
        return self

    def insert(self, data):
        self.operation = "insert"
        self.payload = data
        return self

    def update(self, data):
        self.operation = "update"
        self.payload = data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def gt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] > value)
        return self

    def order(self, column, desc=False):
        self.order_by.append((column, desc))
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _matches(self, row):
        return all(check(row) for check in self.filters)

    def execute(self):
        if self.store.fail_tables.get(self.table):
            raise self.store.fail_tables[self.table]

        rows = self.store.tables.setdefault(self.table, [])

        if self.operation == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                row = {"id": str(uuid.uuid4()), **item}
                rows.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        matched = [row for row in rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(row) for row in matched])

        if self.operation == "delete":
            self.store.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse([dict(row) for row in matched])

        result = [dict(row) for row in matched]
        for column, desc in reversed(self.order_by):
            result.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        if self.max_rows is not None:
            result = result[:self.max_rows]
        return FakeResponse(result)


class FakeRpc:
    def __init__(self, result):
        self.result = result

    def execute(self):
        return FakeResponse(self.result)


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeAuth:
    def __init__(self):
        self.users: Dict[str, str] = {}

    def get_user(self, token):
        if token not in self.users:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self.users[token]))


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.fail_tables: Dict[str, Exception] = {}
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        assert name == "match_documents"
        candidates = [
            doc for doc in self.tables.get("documents", [])
            if doc.get("bot_id") == params["filter_bot_id"] and doc.get("embedding")
        ]
        scored = sorted(
            ({"id": doc["id"], "text": doc["text"], "similarity": _cosine(doc["embedding"], params["query_embedding"])}
             for doc in candidates),
            key=lambda match: match["similarity"],
            reverse=True,
        )
        return FakeRpc(scored[:params["match_count"]])

    def rows(self, table):
        return self.tables.get(table, [])


class FakeChatClient:
    """Chat client double with the same interface as the provider clients"""

    def __init__(self, text="Hello from the bot", tool_calls=None, error=None, chunks=None):
        self.text = text
        self.tool_calls = tool_calls or []
        self.error = error
        self.chunks = chunks
        self.calls: List[Dict[str, Any]] = []

    async def generate_response(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return CompletionResult(text=self.text, tool_calls=list(self.tool_calls), total_tokens=42)

    async def stream_response(self, **kwargs):
        self.calls.append(kwargs)
        for piece in self.chunks if self.chunks is not None else [self.text]:
            if isinstance(piece, Exception):
                raise piece
            yield StreamChunk(text=piece)
        if self.tool_calls:
            yield StreamChunk(tool_calls=list(self.tool_calls))


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_GENERATIVE_AI_API_KEY", raising=False)
    monkeypatch.setenv("API_KEY_ENCRYPTION_SECRET", "test-encryption-secret")
    monkeypatch.setenv("ENVIRONMENT", "test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def supabase():
    client = FakeSupabase()
    set_client(client)
    yield client
    set_client(None)


@pytest.fixture
def db(supabase):
    return Database(supabase)


_ids = itertools.count(1)


@pytest.fixture
def make_bot(supabase):
    def _make_bot(**overrides):
        bot = {
            "id": f"bot-{next(_ids)}",
            "user_id": "user-1",
            "organization_id": "org-1",
            "bot_names": "Support Bot",
            "primary_color": "#3276EA",
            "model_provider": "OpenAI",
            "model_id": "gpt-4o-mini",
            "api_key": "sk-test",
            "system_prompt": "You are a support bot.",
            "temperature": 0.5,
            "max_tokens": 500,
            "escalation": None,
            "created_at": 1,
            "updated_at": 1,
        }
        bot.update(overrides)
        supabase.tables.setdefault("bot_profiles", []).append(bot)
        return bot
    return _make_bot


@pytest.fixture
def owner():
    return TenantContext(user_id="user-1")


@pytest.fixture
def stranger():
    return TenantContext(user_id="user-2")


@pytest.fixture
def org_member():
    return TenantContext(user_id="user-3", org_id="org-1", org_role=OrgRole.MEMBER)


@pytest.fixture
def fake_embedding(monkeypatch):
    """Replaces Gemini embeddings with a deterministic vector"""
    calls = []

    async def _embed(text, api_key):
        calls.append((text, api_key))
        return [1.0, 0.0, 0.5]

    monkeypatch.setattr("tenantbot.core.rag.generate_embedding", _embed)
    monkeypatch.setattr("tenantbot.core.knowledge.generate_embedding", _embed)
    return calls


@pytest.fixture
def chat_client():
    """Factory for FakeChatClient instances"""
    return FakeChatClient
