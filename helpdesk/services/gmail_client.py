"""Thin Gmail REST client over httpx."""

from __future__ import annotations

import httpx

from helpdesk.core.config import settings


GMAIL_TIMEOUT_SECONDS = 30.0


class GmailApiError(RuntimeError):
    """Gmail API returned an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GmailAuthError(GmailApiError):
    """Access token missing, expired or revoked."""

    pass


class GmailClient:
    """
    Read-only access to one mailbox with an already-issued access token.

    Token acquisition and refresh happen outside this client.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
    ):
        if not access_token:
            raise GmailAuthError("Gmail access token missing")
        self._access_token = access_token
        self._base_url = (base_url or settings.GMAIL_API_BASE_URL).rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=GMAIL_TIMEOUT_SECONDS)

    def __enter__(self) -> "GmailClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _get(self, path: str, params: dict | None = None) -> dict:
        try:
            response = self._client.get(
                f"{self._base_url}{path}",
                headers={"Authorization": f"Bearer {self._access_token}"},
                params=params,
            )
        except httpx.HTTPError as exc:
            raise GmailApiError(f"Gmail API unreachable: {exc}") from exc
        if response.status_code >= 400:
            detail = None
            try:
                payload = response.json()
            except ValueError:
                detail = response.text
            else:
                error = payload.get("error") if isinstance(payload, dict) else None
                if isinstance(error, dict):
                    detail = error.get("message")
                elif isinstance(error, str):
                    detail = error
            message = f"Gmail API error {response.status_code}: {detail or 'unknown error'}"
            if response.status_code == 401:
                raise GmailAuthError(message, status_code=401)
            raise GmailApiError(message, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise GmailApiError("Gmail API returned a non-JSON body", status_code=response.status_code) from exc

    def get_profile(self) -> dict:
        return self._get("/users/me/profile")

    def list_messages(self, query: str, max_results: int) -> list[dict]:
        """Message stubs (``id``, ``threadId``) matching a Gmail search query."""
        payload = self._get(
            "/users/me/messages",
            params={"q": query, "maxResults": max_results},
        )
        return payload.get("messages", []) or []

    def get_thread(self, thread_id: str) -> dict:
        """Full thread with message payloads, oldest message first."""
        return self._get(f"/users/me/threads/{thread_id}", params={"format": "full"})
