"""HTTP client helpers for talking to the ReMarkable API."""
import os
from typing import Any

import httpx


def get_api_base_url() -> str:
    """Get the API base URL from environment."""
    return os.getenv("REMARKABLE_API_URL", "http://localhost:8000")


def get_default_timeout() -> float:
    """Get the default request timeout."""
    return float(os.getenv("REMARKABLE_API_TIMEOUT", "30.0"))


def create_client(base_url: str | None = None) -> httpx.AsyncClient:
    """Create an AsyncClient bound to the API base URL."""
    return httpx.AsyncClient(
        base_url=base_url or get_api_base_url(),
        timeout=get_default_timeout(),
    )


def get_headers(token: str | None) -> dict[str, str]:
    """Get common headers for API requests."""
    headers = {"X-Request-Source": "remarkable-client"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def api_get(
    client: httpx.AsyncClient,
    path: str,
    token: str | None,
    params: dict[str, Any] | None = None,
) -> Any:
    """Make an authenticated GET request to the API."""
    response = await client.get(
        path,
        params=params,
        headers=get_headers(token),
    )
    response.raise_for_status()
    return response.json()


async def api_post(
    client: httpx.AsyncClient,
    path: str,
    token: str | None,
    json: dict[str, Any] | None = None,
) -> Any:
    """Make an authenticated POST request to the API."""
    response = await client.post(
        path,
        json=json,
        headers=get_headers(token),
    )
    response.raise_for_status()
    return response.json()


async def api_patch(
    client: httpx.AsyncClient,
    path: str,
    token: str | None,
    json: dict[str, Any],
) -> Any:
    """Make an authenticated PATCH request to the API."""
    response = await client.patch(
        path,
        json=json,
        headers=get_headers(token),
    )
    response.raise_for_status()
    return response.json()


async def api_delete(
    client: httpx.AsyncClient,
    path: str,
    token: str | None,
) -> None:
    """Make an authenticated DELETE request to the API."""
    response = await client.delete(
        path,
        headers=get_headers(token),
    )
    response.raise_for_status()
