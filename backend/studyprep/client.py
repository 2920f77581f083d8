# studyprep/client.py
"""
HTTP client for the `/users` endpoints.

Every non-2xx response becomes a `UserApiError` whose message is `"<status> <details>"`.
`details` is the first non-empty of the body's `details`, `error` and `message` fields; failing
that the body itself (JSON re-serialised, otherwise the raw text); failing that a fixed
per-operation message.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("studyprep.client")

DEFAULT_BASE_URL = "http://localhost:8000/api"


class UserApiError(Exception):
    """Non-2xx response from the user API."""

    def __init__(self, status: int, details: str, body: Any = None) -> None:
        self.status = status
        self.details = details
        self.body = body
        super().__init__(f"{status} {details}")


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def error_details(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("details", "error", "message"):
            if body.get(key):
                return str(body[key])
        return json.dumps(body)
    if body is None or body == "":
        return default
    if isinstance(body, str):
        return body
    return json.dumps(body)


class UserApiClient:
    """
    Synchronous client. `token` is a Firebase ID token sent as `Authorization: Bearer`.
    Pass `transport=httpx.MockTransport(...)` in tests.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "UserApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, default_error: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        response = self._client.request(method, path, json=payload)
        if response.is_success:
            return response.json() if response.content else None

        body = _parse_body(response)
        logger.error("API error: url=%s status=%s body=%r", response.request.url, response.status_code, body)
        raise UserApiError(response.status_code, error_details(body, default_error), body)

    def upsert_on_sign_in(
        self,
        firebase_uid: str,
        email: str,
        display_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        avatar_provider: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {"firebaseUid": firebase_uid, "email": email}
        if display_name is not None:
            payload["displayName"] = display_name
        if avatar_url is not None:
            payload["avatarUrl"] = avatar_url
        if avatar_provider is not None:
            payload["avatarProvider"] = avatar_provider
        data = self._request("POST", "/users/signin", "Failed to upsert user", payload)
        return data["user"]

    def get_user_by_firebase_uid(self, firebase_uid: str) -> Dict[str, Any]:
        data = self._request("GET", f"/users/{firebase_uid}", "Failed to fetch user")
        return data["user"]

    def update_user_profile(self, firebase_uid: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """`changes` uses the JSON field names (`username`, `avatarUrl`, ...)."""
        data = self._request("PATCH", f"/users/{firebase_uid}", "Failed to update user profile", changes)
        return data["user"]

    def delete_user(self, firebase_uid: str) -> None:
        self._request("DELETE", f"/users/{firebase_uid}", "Failed to delete user")
