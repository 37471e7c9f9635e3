import httpx
import pytest

from uni_tracker.backend import BackendClient, BackendError
from uni_tracker.config import BackendConfig


def make_client(handler, access_token=None):
    config = BackendConfig(url="https://example.supabase.co/", anon_key="anon-key")
    return BackendClient(config, access_token=access_token,
                         http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_query_builds_row_api_params():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    client = make_client(handler)
    (
        client.table("evaluations")
        .select("id, title")
        .eq("user_id", "u-1")
        .eq("completed", False)
        .not_is("due_date", None)
        .gte("due_date", "2026-03-10T13:00:00Z")
        .in_("subject_id", ["a", 'b"c'])
        .order("due_date")
        .limit(5)
        .execute()
    )

    (request,) = seen
    assert request.url.path == "/rest/v1/evaluations"
    assert request.url.params.multi_items() == [
        ("select", "id, title"),
        ("user_id", "eq.u-1"),
        ("completed", "eq.false"),
        ("due_date", "not.is.null"),
        ("due_date", "gte.2026-03-10T13:00:00Z"),
        ("subject_id", 'in.("a","b\\"c")'),
        ("order", "due_date.asc"),
        ("limit", "5"),
    ]


def test_anon_key_used_until_signed_in():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    client = make_client(handler)
    client.table("subjects").select().execute()
    client.set_access_token("user-token")
    client.table("subjects").select().execute()

    assert seen[0].headers["apikey"] == "anon-key"
    assert seen[0].headers["authorization"] == "Bearer anon-key"
    assert seen[1].headers["authorization"] == "Bearer user-token"


def test_insert_asks_for_representation():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json=[{"id": "s-1", "name": "Calculus"}])

    rows = make_client(handler).table("subjects").insert([{"name": "Calculus"}]).execute()

    assert rows == [{"id": "s-1", "name": "Calculus"}]
    assert seen[0].method == "POST"
    assert seen[0].headers["prefer"] == "return=representation"


def test_single_sets_object_accept_header():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "s-1"})

    row = make_client(handler).table("subjects").select().eq("id", "s-1").single().execute()

    assert row == {"id": "s-1"}
    assert seen[0].headers["accept"] == "application/vnd.pgrst.object+json"


def test_empty_response_is_empty_list():
    client = make_client(lambda request: httpx.Response(204))

    assert client.table("subjects").delete().eq("id", "s-1").execute() == []


def test_error_status_raises_with_backend_message():
    client = make_client(lambda request: httpx.Response(401, json={"message": "JWT expired"}))

    with pytest.raises(BackendError) as excinfo:
        client.table("subjects").select().execute()

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "JWT expired"


def test_transport_error_raises_backend_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(BackendError) as excinfo:
        make_client(handler).table("subjects").select().execute()

    assert excinfo.value.status_code is None


def test_auth_post_targets_auth_api():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"access_token": "t"})

    payload = make_client(handler).auth_post("token", {"email": "a"}, params={"grant_type": "password"})

    assert payload == {"access_token": "t"}
    assert seen[0].url.path == "/auth/v1/token"
    assert seen[0].url.params["grant_type"] == "password"
