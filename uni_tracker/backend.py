"""HTTP client for the hosted backend's row API and auth API."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from .config import BackendConfig

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when the backend rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    """Extract the backend's error message from a failed response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {response.status_code}"


def _quote(value: Any) -> str:
    """Quote a value for use inside a row-API `in.(...)` list."""
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


class Query:
    """
    A request against one table, built up fluently and run with `execute()`.

    Filters mirror the row API's operators, e.g. `.eq("user_id", uid)` becomes
    `user_id=eq.<uid>`.
    """

    def __init__(self, client: "BackendClient", table: str):
        self.client = client
        self.table = table
        self.method = "GET"
        self.params: List[Tuple[str, str]] = []
        self.body: Any = None
        self.headers: Dict[str, str] = {}
        self._single = False

    # Verbs

    def select(self, columns: str = "*") -> "Query":
        self.method = "GET"
        self.params.append(("select", columns))
        return self

    def insert(self, rows: List[Dict[str, Any]]) -> "Query":
        self.method = "POST"
        self.body = rows
        self.headers["Prefer"] = "return=representation"
        return self

    def update(self, values: Dict[str, Any]) -> "Query":
        self.method = "PATCH"
        self.body = values
        self.headers["Prefer"] = "return=representation"
        return self

    def delete(self) -> "Query":
        self.method = "DELETE"
        self.headers["Prefer"] = "return=representation"
        return self

    # Filters

    def _filter(self, column: str, expression: str) -> "Query":
        self.params.append((column, expression))
        return self

    def eq(self, column: str, value: Any) -> "Query":
        if isinstance(value, bool):
            value = "true" if value else "false"
        return self._filter(column, f"eq.{value}")

    def neq(self, column: str, value: Any) -> "Query":
        return self._filter(column, f"neq.{value}")

    def gte(self, column: str, value: Any) -> "Query":
        return self._filter(column, f"gte.{value}")

    def lte(self, column: str, value: Any) -> "Query":
        return self._filter(column, f"lte.{value}")

    def is_(self, column: str, value: Optional[bool]) -> "Query":
        literal = "null" if value is None else ("true" if value else "false")
        return self._filter(column, f"is.{literal}")

    def not_is(self, column: str, value: Optional[bool]) -> "Query":
        literal = "null" if value is None else ("true" if value else "false")
        return self._filter(column, f"not.is.{literal}")

    def in_(self, column: str, values: Iterable[Any]) -> "Query":
        joined = ",".join(_quote(v) for v in values)
        return self._filter(column, f"in.({joined})")

    # Modifiers

    def order(self, column: str, ascending: bool = True) -> "Query":
        direction = "asc" if ascending else "desc"
        self.params.append(("order", f"{column}.{direction}"))
        return self

    def limit(self, count: int) -> "Query":
        self.params.append(("limit", str(count)))
        return self

    def single(self) -> "Query":
        self._single = True
        self.headers["Accept"] = "application/vnd.pgrst.object+json"
        return self

    def execute(self):
        """
        Run the request.

        Returns:
            A list of row dicts, or a single dict when `single()` was used.

        Raises:
            BackendError: On transport failure or a non-2xx response.
        """
        response = self.client.request(
            self.method,
            f"/rest/v1/{self.table}",
            params=self.params,
            json=self.body,
            headers=self.headers,
        )
        if response.status_code == 204 or not response.content:
            return {} if self._single else []
        return response.json()


class BackendClient:
    """Thin client for a PostgREST/GoTrue style hosted backend."""

    def __init__(
        self,
        config: BackendConfig,
        access_token: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the backend client.

        Args:
            config: Backend configuration.
            access_token: User access token; the anon key is used when absent.
            http_client: Optional preconfigured httpx client (tests pass one
                built on httpx.MockTransport).
        """
        self.config = config
        self.base_url = config.url.rstrip("/")
        self.access_token = access_token
        self.http = http_client or httpx.Client(timeout=config.timeout_seconds)

    def set_access_token(self, access_token: Optional[str]) -> None:
        self.access_token = access_token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.config.anon_key,
            "Authorization": f"Bearer {self.access_token or self.config.anon_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        path: str,
        params=None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Send a request to the backend.

        Raises:
            BackendError: On transport failure or a non-2xx response.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(headers),
            )
        except httpx.HTTPError as e:
            logger.error(f"Backend request {method} {path} failed: {e}")
            raise BackendError(f"Could not reach backend: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.debug(f"Backend {method} {path} -> {response.status_code}: {message}")
            raise BackendError(message, status_code=response.status_code)
        return response

    def table(self, name: str) -> Query:
        return Query(self, name)

    def auth_post(self, path: str, payload: Optional[Dict[str, Any]] = None, params=None) -> Dict[str, Any]:
        """POST to the auth API and return the decoded JSON body."""
        response = self.request("POST", f"/auth/v1/{path}", params=params, json=payload or {})
        if not response.content:
            return {}
        return response.json()

    def close(self) -> None:
        self.http.close()
