"""
Shared fixtures: an in-memory stand-in for the Supabase client, a scripted
upstream model stream, and a TestClient wired to both.
"""
import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from models.generation import TokenUsage

USER_ID = "user-1"


class FakeAPIError(Exception):
    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.on_conflict = "id"
        self.filters = []
        self.order_by = None
        self.is_single = False

    def select(self, *columns):
        self.action = "select"
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict="id"):
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, values):
        self.action, self.payload = "update", values
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def single(self):
        self.is_single = True
        return self

    def execute(self):
        if (self.table, self.action) in self.db.failures:
            raise Exception(f"{self.action} on {self.table} failed")
        rows = self.db.tables.setdefault(self.table, [])
        matched = [row for row in rows if all(check(row) for check in self.filters)]

        if self.action == "select":
            data = [dict(row) for row in matched]
            if self.order_by:
                column, desc = self.order_by
                data.sort(key=lambda row: str(row.get(column) or ""), reverse=desc)
            if self.is_single:
                if len(data) != 1:
                    raise Exception("JSON object requested, multiple (or no) rows returned")
                return FakeResponse(data[0])
            return FakeResponse(data)

        if self.action == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            key = self.db.primary_keys.get(self.table)
            for row in payload:
                row = dict(row)
                if key and any(r.get(key) == row.get(key) for r in rows):
                    raise FakeAPIError(f"duplicate key value violates unique constraint \"{self.table}_pkey\"", code="23505")
                row.setdefault("id", str(uuid.uuid4()))
                rows.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        if self.action == "upsert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            for row in payload:
                existing = [r for r in rows if r.get(self.on_conflict) == row.get(self.on_conflict)]
                if existing:
                    existing[0].update(row)
                else:
                    rows.append(dict(row))
            return FakeResponse([dict(row) for row in payload])

        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(row) for row in matched])

        # delete
        for row in matched:
            rows.remove(row)
        return FakeResponse([dict(row) for row in matched])


class FakeRpc:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        if self.name in self.db.failing_rpcs:
            raise Exception(f"function {self.name} does not exist")
        result = getattr(self.db, f"_rpc_{self.name}")(**self.params)
        if self.name in self.db.errors_after_apply:
            raise self.db.errors_after_apply.pop(self.name)
        return FakeResponse(result)


class FakeAdmin:
    def __init__(self):
        self.deleted_users = []

    def delete_user(self, user_id):
        self.deleted_users.append(user_id)


class FakeSupabase:
    """Dict-backed subset of the supabase-py client used by the services."""

    def __init__(self):
        self.tables = {}
        self.failures = set()
        self.failing_rpcs = set()
        self.rpc_calls = []
        self.errors_after_apply = {}
        self.primary_keys = {"billing_webhook_events": "event_id"}
        self.auth = SimpleNamespace(admin=FakeAdmin())

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self, name, params)

    def rows(self, name):
        return self.tables.get(name, [])

    def profile(self, user_id=USER_ID):
        return next(row for row in self.rows("profiles") if row["id"] == user_id)

    def _rpc_deduct_credits(self, user_id_arg, amount):
        profile = self.profile(user_id_arg)
        profile["credits"] = max(0, profile["credits"] - amount)
        return profile["credits"]

    def _rpc_grant_subscription(self, user_id_arg, amount, tier_arg, subscription_id_arg, customer_id_arg):
        profile = self.profile(user_id_arg)
        profile["credits"] += amount
        profile["tier"] = tier_arg
        profile["dodo_subscription_id"] = subscription_id_arg
        profile["dodo_customer_id"] = customer_id_arg or profile["dodo_customer_id"]
        return profile["credits"]

    def _check_frame_owner(self, project_id, frame_ids):
        for frame in self.rows("frames"):
            if frame["id"] in frame_ids and frame["project_id"] != project_id:
                raise FakeAPIError(f"frame {frame['id']} belongs to another project", code="23505")

    def _rpc_upsert_project_frame(self, project_id_arg, frame_arg):
        self._check_frame_owner(project_id_arg, {frame_arg["id"]})
        FakeQuery(self, "frames").upsert(frame_arg, on_conflict="id").execute()
        return None

    def _rpc_sync_project_frames(self, project_id_arg, frames_arg):
        keep = {frame["id"] for frame in frames_arg}
        self._check_frame_owner(project_id_arg, keep)
        frames = self.tables.setdefault("frames", [])
        frames[:] = [f for f in frames if f["project_id"] != project_id_arg or f["id"] in keep]
        for frame in frames_arg:
            FakeQuery(self, "frames").upsert(frame, on_conflict="id").execute()
        return None


class FakeUpstream:
    """Scripted model stream; usage is reported once iteration completes."""

    def __init__(self, chunks, input_tokens=0, output_tokens=0, error=None):
        self.chunks = list(chunks)
        self.error = error
        self.usage = TokenUsage()
        self._final_usage = TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error:
            raise self.error
        self.usage = self._final_usage


class FakeGenerator:
    def __init__(self, chunks=(), input_tokens=1000, output_tokens=1000, error=None, open_error=None):
        self.chunks = chunks
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.error = error
        self.open_error = open_error
        self.calls = []

    async def open_stream(self, request, history=None, user_tier="free"):
        self.calls.append({"request": request, "history": history, "user_tier": user_tier})
        if self.open_error:
            raise self.open_error
        return FakeUpstream(self.chunks, self.input_tokens, self.output_tokens, self.error)


@pytest.fixture
def supabase():
    db = FakeSupabase()
    db.tables["profiles"] = [{
        "id": USER_ID,
        "email": "maker@nuvix.app",
        "full_name": "Test Maker",
        "tier": "free",
        "credits": 100,
        "dodo_customer_id": None,
        "dodo_subscription_id": None,
    }]
    return db


@pytest.fixture
def project(supabase):
    row = {"id": "project-1", "user_id": USER_ID, "name": "My First App", "created_at": "2025-01-01T00:00:00"}
    supabase.tables["projects"] = [row]
    return dict(row)


@pytest.fixture
def generator():
    return FakeGenerator(chunks=[
        "Here you go:\n```html\n<div>Login</div>\n```\n",
        "```html\n<div>Home</div>\n```",
    ])


@pytest.fixture
def client(supabase, generator):
    from index import app
    from auth.dependencies import get_current_user, get_supabase_client
    from routes.generation import get_ui_generator

    def current_user():
        profile = supabase.profile()
        return {"id": profile["id"], "email": profile["email"], "tier": profile["tier"], "credits": profile["credits"],
                "dodo_customer_id": profile["dodo_customer_id"], "dodo_subscription_id": profile["dodo_subscription_id"]}

    app.dependency_overrides[get_current_user] = current_user
    app.dependency_overrides[get_supabase_client] = lambda: supabase
    app.dependency_overrides[get_ui_generator] = lambda: generator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
