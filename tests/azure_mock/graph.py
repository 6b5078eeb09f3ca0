"""Mock Microsoft Graph directory for testing.

Two fakes are provided:
- MockDirectoryClient: satisfies the ``DirectoryClient`` protocol directly.
- MockGraphSession: replaces the ``requests.Session`` inside
  ``GraphDirectoryClient`` and answers ``getByIds`` requests.
"""

from __future__ import annotations

from typing import Any

import requests

from rgcleanup.directory import DirectoryQueryError


class MockDirectoryClient:
    """In-memory directory of existing principal IDs."""

    def __init__(self, existing: set[str] | None = None) -> None:
        self.existing = set(existing or ())
        self.queries: list[set[str]] = []
        self._fail_message: str | None = None

    def set_failure(self, message: str | None = "Mock directory failure") -> None:
        self._fail_message = message

    def still_exist(self, ids: set[str]) -> set[str]:
        self.queries.append(set(ids))
        if self._fail_message is not None:
            raise DirectoryQueryError(self._fail_message)
        return ids & self.existing


class MockResponse:
    """Just enough of ``requests.Response`` for the Graph client."""

    def __init__(self, status_code: int, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)  # type: ignore[arg-type]


class MockGraphSession:
    """Answers ``POST directoryObjects/getByIds`` from an in-memory set."""

    def __init__(self, existing: set[str] | None = None) -> None:
        self.existing = set(existing or ())
        self.requests: list[dict[str, Any]] = []
        self._status_code = 200
        self._connection_error = False

    def set_status(self, status_code: int) -> None:
        self._status_code = status_code

    def set_connection_error(self, enabled: bool = True) -> None:
        self._connection_error = enabled

    def post(self, url: str, **kwargs: Any) -> MockResponse:
        self.requests.append({"url": url, **kwargs})
        if self._connection_error:
            raise requests.ConnectionError("Mock connection refused")
        if self._status_code >= 400:
            return MockResponse(self._status_code, text='{"error": "mock"}')

        ids = kwargs.get("json", {}).get("ids", [])
        value = [
            {"@odata.type": "#microsoft.graph.servicePrincipal", "id": principal_id}
            for principal_id in ids
            if principal_id in self.existing
        ]
        return MockResponse(200, {"value": value})
