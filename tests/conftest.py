import json
import re
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest

from uni_tracker.backend import BackendClient
from uni_tracker.config import BackendConfig
from uni_tracker.models import parse_timestamp
from uni_tracker.notifier import NotificationPlatform
from uni_tracker.state_store import InMemoryStateRepository

NOW = datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc)
TOKEN_SECRET = "test-secret"


def make_token(user_id: str, email: str, expires_at: datetime) -> str:
    return jwt.encode(
        {"sub": user_id, "email": email, "exp": int(expires_at.timestamp())},
        TOKEN_SECRET,
        algorithm="HS256",
    )


def _norm(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _compare_key(value):
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return parse_timestamp(str(value))


def _matches(row: dict, column: str, expression: str) -> bool:
    value = row.get(column)
    if expression.startswith("eq."):
        return _norm(value) == expression[3:]
    if expression.startswith("neq."):
        return _norm(value) != expression[4:]
    if expression == "is.null":
        return value is None
    if expression == "not.is.null":
        return value is not None
    if expression.startswith("gte."):
        return value is not None and _compare_key(value) >= _compare_key(expression[4:])
    if expression.startswith("lte."):
        return value is not None and _compare_key(value) <= _compare_key(expression[4:])
    if expression.startswith("in.("):
        members = re.findall(r'"((?:[^"\\]|\\.)*)"', expression[4:-1])
        return _norm(value) in members
    raise AssertionError(f"unsupported filter {column}={expression}")


class FakeBackend:
    """In-memory stand-in for the hosted row and auth APIs, served through httpx.MockTransport."""

    def __init__(self):
        self.tables = {"subjects": [], "evaluations": []}
        self.requests = []
        self.failing_tables = set()
        self.users = {}  # email -> (user_id, password)
        self.confirm_signups = True
        self.now = NOW

    # helpers for tests

    def client(self, access_token=None) -> BackendClient:
        config = BackendConfig(url="https://example.supabase.co", anon_key="anon-key")
        http = httpx.Client(transport=httpx.MockTransport(self.handle))
        return BackendClient(config, access_token=access_token, http_client=http)

    def add_subject(self, name, user_id="user-1", subject_id=None, color="#007AFF", created_at=None):
        row = {
            "id": subject_id or str(uuid.uuid4()),
            "user_id": user_id,
            "name": name,
            "color": color,
            "created_at": (created_at or self.now).isoformat(),
        }
        self.tables["subjects"].append(row)
        return row

    def add_evaluation(self, title, due_date, subject_id=None, user_id="user-1", eval_id=None,
                       completed=False, eval_type="prueba", weight=None, grade=None):
        row = {
            "id": eval_id or str(uuid.uuid4()),
            "user_id": user_id,
            "subject_id": subject_id,
            "title": title,
            "type": eval_type,
            "due_date": due_date.isoformat() if due_date else None,
            "weight": weight,
            "grade": grade,
            "completed": completed,
        }
        self.tables["evaluations"].append(row)
        return row

    def table_requests(self, table, method="GET"):
        return [r for r in self.requests if r.url.path == f"/rest/v1/{table}" and r.method == method]

    # transport

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/auth/v1/"):
            return self._auth(request, path[len("/auth/v1/"):])
        table = path[len("/rest/v1/"):]
        if table in self.failing_tables:
            return httpx.Response(500, json={"message": "database unavailable"})
        if table not in self.tables:
            return httpx.Response(404, json={"message": f"relation {table} does not exist"})

        filters = []
        order = None
        limit = None
        for key, value in request.url.params.multi_items():
            if key == "select":
                continue
            if key == "order":
                order = value
            elif key == "limit":
                limit = int(value)
            else:
                filters.append((key, value))

        rows = self.tables[table]
        matched = [row for row in rows if all(_matches(row, c, e) for c, e in filters)]

        if request.method == "GET":
            if order:
                column, direction = order.rsplit(".", 1)
                def sort_key(row):
                    key = _compare_key(row.get(column))
                    return (key is None, key if key is not None else 0)
                matched.sort(key=sort_key, reverse=direction == "desc")
            if limit is not None:
                matched = matched[:limit]
            if request.headers.get("accept") == "application/vnd.pgrst.object+json":
                if len(matched) != 1:
                    return httpx.Response(406, json={"message": "JSON object requested, multiple (or no) rows returned"})
                return httpx.Response(200, json=matched[0])
            return httpx.Response(200, json=matched)

        if request.method == "POST":
            created = []
            for row in json.loads(request.content):
                row = dict(row)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", self.now.isoformat())
                rows.append(row)
                created.append(row)
            return httpx.Response(201, json=created)

        if request.method == "PATCH":
            values = json.loads(request.content)
            for row in matched:
                row.update(values)
            return httpx.Response(200, json=matched)

        if request.method == "DELETE":
            self.tables[table] = [row for row in rows if row not in matched]
            return httpx.Response(200, json=matched)

        return httpx.Response(405)

    def _session_payload(self, user_id, email):
        expires_at = self.now + timedelta(hours=1)
        return {
            "access_token": make_token(user_id, email, expires_at),
            "refresh_token": f"refresh-{user_id}",
            "expires_in": 3600,
            "user": {"id": user_id, "email": email},
        }

    def _auth(self, request, endpoint):
        body = json.loads(request.content) if request.content else {}
        if endpoint == "token":
            grant = request.url.params.get("grant_type")
            if grant == "password":
                user = self.users.get(body.get("email"))
                if not user or user[1] != body.get("password"):
                    return httpx.Response(400, json={"error_description": "Invalid login credentials"})
                return httpx.Response(200, json=self._session_payload(user[0], body["email"]))
            if grant == "refresh_token":
                token = body.get("refresh_token", "")
                for email, (user_id, _) in self.users.items():
                    if token == f"refresh-{user_id}":
                        return httpx.Response(200, json=self._session_payload(user_id, email))
                return httpx.Response(400, json={"error_description": "Invalid Refresh Token"})
        if endpoint == "signup":
            email = body.get("email")
            if email in self.users:
                return httpx.Response(422, json={"msg": "User already registered"})
            if len(body.get("password") or "") < 6:
                return httpx.Response(422, json={"msg": "Password should be at least 6 characters"})
            user_id = str(uuid.uuid4())
            self.users[email] = (user_id, body["password"])
            if self.confirm_signups:
                return httpx.Response(200, json={"id": user_id, "email": email})
            return httpx.Response(200, json=self._session_payload(user_id, email))
        if endpoint == "logout":
            return httpx.Response(204)
        return httpx.Response(404, json={"msg": "not found"})


class RecordingPlatform(NotificationPlatform):
    """Notification channel that remembers what it delivered."""

    name = "recording"

    def __init__(self, state, consent=None, supported=True, fail=False):
        super().__init__(state, consent)
        self.supported = supported
        self.fail = fail
        self.delivered = []

    def is_supported(self) -> bool:
        return self.supported

    def _deliver(self, title, body, tag):
        if self.fail:
            raise RuntimeError("notification construction failed")
        self.delivered.append((title, body, tag))


class FakeTimer:
    """Records auto-close timers instead of starting threads."""

    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def fire(self):
        self.function()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def state():
    repo = InMemoryStateRepository()
    repo.set_permission("granted")
    repo.writes = 0
    return repo


@pytest.fixture
def platform(state):
    return RecordingPlatform(state)


@pytest.fixture(autouse=True)
def reset_fake_timers():
    FakeTimer.created = []
    yield
    FakeTimer.created = []
