"""HTTP client for interacting with GitHub's REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import GitHubSettings

LOGGER = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised when a GitHub request fails or returns an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubRestClient:
    """Light-weight REST client. Requests are never retried."""

    def __init__(self, settings: GitHubSettings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._base_url = settings.api_url.rstrip("/")
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": settings.user_agent,
        }
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        if client is not None:
            client.headers.update(headers)
        self._client = client or httpx.AsyncClient(
            headers=headers,
            timeout=settings.request_timeout,
        )
        self._owns_client = client is None

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` relative to the API root and decode the JSON body."""

        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Timed out requesting {url}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise TransportError(
                f"GitHub returned HTTP {response.status_code} for {url}: {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"GitHub returned a non-JSON body for {url}", response.status_code) from exc

    async def fetch_page(self, page: int, page_size: int | None = None) -> list[dict[str, Any]]:
        """Fetch one page of the user's repositories, most recently updated first."""

        page_size = page_size or self._settings.page_size
        if page < 1:
            raise ValueError("pages are 1-indexed")
        if not 1 <= page_size <= 100:
            raise ValueError("page_size must be between 1 and 100")

        payload = await self.get_json(
            f"/users/{self._settings.username}/repos",
            params={"per_page": page_size, "page": page, "sort": "updated"},
        )
        if not isinstance(payload, list):
            raise TransportError(f"Expected a list of repositories on page {page}, got {type(payload).__name__}")
        LOGGER.debug("Fetched page %s with %s repositories", page, len(payload))
        return payload

    async def rate_limit(self) -> dict[str, Any]:
        """Return the raw ``/rate_limit`` payload. Does not count against the quota."""

        return await self.get_json("/rate_limit")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:300]


__all__ = ["GitHubRestClient", "TransportError"]
