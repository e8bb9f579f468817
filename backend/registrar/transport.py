from __future__ import annotations

import logging
import threading
from typing import Any, Callable
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from registrar.config import ClientSettings
from registrar.errors import (
    AuthenticationError,
    DuplicateAssignmentError,
    RequestFailedError,
    ServiceUnavailableError,
)
from registrar.models import (
    ASSIGN_RESULT_ADAPTER,
    Assigned,
    BlockGroup,
    BlockSection,
    DecisionRequest,
    DecisionResult,
    OverCapacity,
    Student,
    SuggestedSection,
)


logger = logging.getLogger(__name__)


_GROUPS = TypeAdapter(list[BlockGroup])
_SECTIONS = TypeAdapter(list[BlockSection])
_STUDENTS = TypeAdapter(list[Student])
_SUGGESTED = TypeAdapter(list[SuggestedSection])

_INVALID_JSON = object()


def _safe_json(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return _INVALID_JSON


def _error_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
        detail = payload.get("detail")
        if isinstance(detail, str) and detail.strip():
            return detail
        if isinstance(detail, list) and detail:
            first = detail[0]
            if isinstance(first, dict) and first.get("msg"):
                return str(first["msg"])
    return f"Request failed ({status_code})"


def _error_code(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    code = payload.get("code")
    if isinstance(code, str) and code:
        return code
    detail = payload.get("detail")
    if isinstance(detail, str) and detail.isupper():
        return detail
    return None


def _path_id(value: Any) -> str:
    return quote(str(value), safe="")


class BlockApi:
    """Thin client for the /api/blocks endpoints.

    Wraps any `httpx.Client` (a FastAPI `TestClient` included). Responses are
    decoded into the models in `registrar.models` before they are returned.
    Nothing is retried; a failed call raises and the caller decides.
    """

    def __init__(
        self,
        client: httpx.Client,
        *,
        token: str | None = None,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._token = token
        self._token_provider = token_provider
        self._timeout = timeout
        # One mutating call at a time: a decision must never race the call that produced its snapshot.
        self._mutation_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> BlockApi:
        client = httpx.Client(base_url=settings.api_url, timeout=settings.timeout_seconds, follow_redirects=True)
        return cls(client, token=settings.token)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BlockApi:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _bearer(self) -> str:
        token = self._token_provider() if self._token_provider is not None else self._token
        if not token:
            raise AuthenticationError("No authentication token found")
        return token

    def _send(self, method: str, path: str, *, params: dict | None = None, json: Any = None) -> Any:
        token = self._bearer()
        kwargs: dict[str, Any] = {"headers": {"Authorization": f"Bearer {token}"}}
        if params is not None:
            kwargs["params"] = params
        if json is not None:
            kwargs["json"] = json
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout

        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Block API unreachable (%s %s): %s", method, path, exc)
            raise ServiceUnavailableError(f"Could not reach the block service: {exc}") from exc

        payload = _safe_json(response)
        if response.is_success:
            if payload is _INVALID_JSON:
                raise RequestFailedError(
                    f"Invalid response from server ({response.status_code})",
                    status_code=response.status_code,
                )
            return payload

        body = payload if payload is not _INVALID_JSON else None
        message = _error_message(body, response.status_code)
        code = _error_code(body)
        logger.info("Block API %s %s failed: %s %s", method, path, response.status_code, message)

        if response.status_code == 401:
            raise AuthenticationError(message)
        if response.status_code == 409 and code == "ALREADY_ASSIGNED":
            raise DuplicateAssignmentError(message, status_code=409, code=code)
        if response.status_code == 503:
            raise ServiceUnavailableError(message, status_code=503, code=code)
        raise RequestFailedError(message, status_code=response.status_code, code=code)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        if method == "GET":
            return self._send(method, path, **kwargs)
        with self._mutation_lock:
            return self._send(method, path, **kwargs)

    @staticmethod
    def _decode(adapter: TypeAdapter, payload: Any, what: str) -> Any:
        try:
            return adapter.validate_python(payload)
        except ValidationError as exc:
            logger.warning("Malformed %s response: %s", what, exc)
            raise RequestFailedError(f"Malformed {what} response from server") from exc

    # -- reads ---------------------------------------------------------------

    def list_groups(self) -> list[BlockGroup]:
        return self._decode(_GROUPS, self._request("GET", "/api/blocks/groups"), "block group")

    def list_sections(self, group_id: str) -> list[BlockSection]:
        payload = self._request("GET", f"/api/blocks/groups/{_path_id(group_id)}/sections")
        return self._decode(_SECTIONS, payload, "block section")

    def assignable_students(self, *, semester: str, year: int, q: str = "", group_id: str = "") -> list[Student]:
        params: dict[str, Any] = {"semester": semester, "year": int(year), "q": q}
        # Omitted rather than blank; the API parses groupId as a UUID.
        if group_id:
            params["groupId"] = group_id
        payload = self._request("GET", "/api/blocks/assignable-students", params=params)
        return self._decode(_STUDENTS, payload, "assignable student")

    def section_students(self, section_id: str) -> list[Student]:
        payload = self._request("GET", f"/api/blocks/sections/{_path_id(section_id)}/students")
        if isinstance(payload, dict):
            payload = payload.get("students", [])
        return self._decode(_STUDENTS, payload, "section roster")

    def suggested_sections(self, section_id: str, *, limit: int = 5) -> list[SuggestedSection]:
        payload = self._request(
            "GET",
            f"/api/blocks/sections/{_path_id(section_id)}/suggested",
            params={"limit": int(limit)},
        )
        return self._decode(_SUGGESTED, payload, "suggested section")

    # -- writes --------------------------------------------------------------

    def create_group(self, *, name: str, semester: str, year: int, policies: dict | None = None) -> BlockGroup:
        body: dict[str, Any] = {"name": name, "semester": semester, "year": int(year)}
        if policies:
            body["policies"] = policies
        return self._decode(
            TypeAdapter(BlockGroup), self._request("POST", "/api/blocks/groups", json=body), "block group"
        )

    def create_section(self, group_id: str, *, section_code: str, capacity: int, schedule: str = "") -> BlockSection:
        body = {"sectionCode": section_code, "capacity": int(capacity), "schedule": schedule}
        payload = self._request("POST", f"/api/blocks/groups/{_path_id(group_id)}/sections", json=body)
        return self._decode(TypeAdapter(BlockSection), payload, "block section")

    def delete_group(self, group_id: str) -> str:
        payload = self._request("DELETE", f"/api/blocks/groups/{_path_id(group_id)}")
        if isinstance(payload, dict) and isinstance(payload.get("message"), str):
            return payload["message"]
        return "Block group deleted successfully"

    def assign_student(self, *, student_id: str, section_id: str, semester: str, year: int) -> Assigned | OverCapacity:
        body = {"studentId": student_id, "sectionId": section_id, "semester": semester, "year": int(year)}
        payload = self._request("POST", "/api/blocks/assign-student", json=body)
        return self._decode(ASSIGN_RESULT_ADAPTER, payload, "assignment")

    def submit_decision(self, decision: DecisionRequest) -> DecisionResult:
        payload = self._request("POST", "/api/blocks/overcapacity/decision", json=decision.payload())
        return self._decode(TypeAdapter(DecisionResult), payload, "decision")
