"""Principal existence lookups against Microsoft Entra ID.

The reconciler only needs one question answered: which of these principal IDs
still exist? ``GraphDirectoryClient`` answers it with the Microsoft Graph
``directoryObjects/getByIds`` action. Graph caps that action at 1000 IDs per
request, so larger sets are split into batches internally; callers see a
single call.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests
from azure.core.exceptions import AzureError

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_API_VERSION = "v1.0"
MAX_IDS_PER_REQUEST = 1000
DIRECTORY_OBJECT_TYPES = ("servicePrincipal",)


class DirectoryQueryError(Exception):
    """Raised when the directory cannot be queried."""

    pass


class DirectoryClient(Protocol):
    """Anything that can tell which principal IDs still exist."""

    def still_exist(self, ids: set[str]) -> set[str]:
        """Return the subset of ``ids`` that currently exist in the directory."""
        ...


class GraphDirectoryClient:
    """Directory lookups over the Microsoft Graph REST API."""

    def __init__(
        self,
        credential: Any,
        *,
        endpoint: str = "https://graph.microsoft.com",
        timeout_seconds: float = 60,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the Graph client.

        Args:
            credential: azure-identity credential able to issue Graph tokens.
            endpoint: Graph base URL (sovereign clouds use a different host).
            timeout_seconds: Per-request HTTP timeout.
            session: Optional requests session, for connection reuse.
        """
        self._credential = credential
        self._url = f"{endpoint.rstrip('/')}/{GRAPH_API_VERSION}/directoryObjects/getByIds"
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def still_exist(self, ids: set[str]) -> set[str]:
        """Return the subset of ``ids`` that resolve to existing service principals.

        Raises:
            DirectoryQueryError: If a token cannot be obtained or any batch fails.
        """
        if not ids:
            return set()

        try:
            token = self._credential.get_token(GRAPH_SCOPE).token
        except AzureError as e:
            raise DirectoryQueryError(f"failed to acquire Graph token: {e}") from e

        ordered = sorted(ids)
        existing: set[str] = set()
        for start in range(0, len(ordered), MAX_IDS_PER_REQUEST):
            batch = ordered[start : start + MAX_IDS_PER_REQUEST]
            existing.update(self._query_batch(batch, token))

        logger.info(
            "Directory lookup complete",
            extra={"queried": len(ids), "existing": len(existing)},
        )
        # Only report IDs that were asked about
        return existing & ids

    def _query_batch(self, batch: list[str], token: str) -> set[str]:
        try:
            response = self._session.post(
                self._url,
                headers={"Authorization": f"Bearer {token}"},
                json={"ids": batch, "types": list(DIRECTORY_OBJECT_TYPES)},
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.HTTPError as e:
            body = e.response.text[:200] if e.response is not None else ""
            raise DirectoryQueryError(f"error querying graph: {e} {body}".strip()) from e
        except (requests.RequestException, ValueError) as e:
            raise DirectoryQueryError(f"error querying graph: {e}") from e

        return {obj["id"] for obj in payload.get("value", []) if obj.get("id")}
