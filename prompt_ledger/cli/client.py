"""API client for the PromptLedger REST API."""

from __future__ import annotations

from typing import Any

import httpx

# CLI entity names to URL collection paths
COLLECTIONS = {
    "project": "projects",
    "prompt": "prompts",
    "snippet": "snippets",
    "snippet_collection": "snippet-collections",
}


class LedgerAPIError(RuntimeError):
    """Non-2xx response. ``payload`` is the decoded error body, if any."""

    def __init__(self, status_code: int, payload: dict[str, Any]) -> None:
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"API error ({status_code}): {payload.get('detail', payload)}")

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409 and self.payload.get("error") == "conflict"


class LedgerClient:
    """HTTP client wrapping the PromptLedger audit, restore and trash endpoints."""

    def __init__(self, base_url: str = "http://localhost:8400", auth_token: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = httpx.Client(base_url=f"{self.base_url}/api/v1", headers=headers, timeout=30)

    def _handle(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = {"detail": resp.text}
            raise LedgerAPIError(resp.status_code, payload)
        return resp.json()

    # --- Audit log ---

    def list_logs(self, **params: Any) -> dict:
        params = {k: v for k, v in params.items() if v is not None}
        return self._handle(self._client.get("/logs", params=params))

    def get_log(self, event_id: str) -> dict:
        return self._handle(self._client.get(f"/logs/{event_id}"))

    def delete_log(self, event_id: str) -> dict:
        return self._handle(self._client.delete(f"/logs/{event_id}"))

    # --- Diff / restore ---

    def diff(self, event_id: str) -> dict:
        return self._handle(self._client.get(f"/diff/{event_id}"))

    def restore(self, event_id: str, force: bool = False) -> dict:
        """Restore an event. A conflict raises LedgerAPIError with ``is_conflict`` set."""
        return self._handle(self._client.post(f"/restore/{event_id}", json={"force": force}))

    # --- Trash ---

    def list_deleted(self, entity_type: str, **params: Any) -> list[dict]:
        params = {k: v for k, v in params.items() if v is not None}
        return self._handle(self._client.get(f"/{COLLECTIONS[entity_type]}/deleted", params=params))

    def restore_from_trash(self, entity_type: str, entity_id: str) -> dict:
        return self._handle(self._client.post(f"/{COLLECTIONS[entity_type]}/{entity_id}/restore"))

    def permanent_delete(self, entity_type: str, entity_id: str) -> dict:
        return self._handle(
            self._client.post(f"/{COLLECTIONS[entity_type]}/{entity_id}/permanent-delete")
        )
