"""Client for the third-party scale export API.

Endpoints used:
    POST {base}/user/scale/export  — telemetry for one scale/resolution/window
    GET  {base}/user/scale         — authoritative scale catalog

Both are authenticated with a static bearer token.  One ``httpx.AsyncClient``
is shared for the lifetime of the process; every request is bounded by
``upstream_timeout_seconds`` and a timeout surfaces as ``UpstreamFetchError``
like any other failed fetch.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.config import Settings
from src.telemetry.base import Resolution
from src.telemetry.errors import UpstreamFetchError
from src.telemetry.windows import Window

logger = logging.getLogger("hivewatch.upstream")

# Diagnostic bodies are truncated to this many characters
_MAX_BODY_CHARS = 500


class UpstreamClient:
    """Export-API client.

    Supports an injected ``http_client`` (for testing); otherwise one is
    created from settings and closed by ``aclose()``.
    """

    def __init__(
        self, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self._settings = settings
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            base_url=settings.upstream_api_base_url,
            timeout=settings.upstream_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.upstream_api_token}"}

    async def export(
        self, entity_id: str, resolution: Resolution, window: Window
    ) -> list[dict[str, Any]]:
        """Fetch raw telemetry items for one scale.

        Args:
            entity_id:  Scale id as known upstream.
            resolution: ``hourly`` or ``daily``.
            window:     Half-open fetch window.

        Returns:
            Raw export items (possibly empty).

        Raises:
            UpstreamFetchError: On non-2xx, timeout, transport failure or a
                malformed body.
        """
        time_start, time_end = window.to_unix()
        payload = {
            "scale": entity_id,
            "time_start": time_start,
            "time_end": time_end,
            "time_resolution": resolution.value,
            "format": "json",
        }
        logger.debug("Fetching %s data for %s over %s", resolution.value, entity_id, window)
        body = await self._request(
            "POST", self._settings.upstream_export_path, json=payload,
            what=f"{resolution.value} export for {entity_id}",
        )

        data = body.get("data") if isinstance(body, dict) else None
        if data is None:
            return []
        if not isinstance(data, list):
            raise UpstreamFetchError(
                f"Export for {entity_id} returned non-list 'data' ({type(data).__name__})"
            )
        logger.debug("%s data received for %s: %d", resolution.value, entity_id, len(data))
        return data

    async def list_scales(self) -> list[dict[str, Any]]:
        """Fetch the authoritative scale catalog.

        Raises:
            UpstreamFetchError: On request failure or when ``scales`` is
                missing or not a list.
        """
        body = await self._request(
            "GET", self._settings.upstream_catalog_path, what="scale catalog"
        )
        scales = body.get("scales") if isinstance(body, dict) else None
        if not isinstance(scales, list):
            raise UpstreamFetchError("Invalid scale catalog format")
        return [s for s in scales if isinstance(s, dict)]

    async def _request(self, method: str, path: str, *, what: str, **kwargs: Any) -> Any:
        try:
            response = await self._http_client.request(
                method, path, headers=self._headers, **kwargs
            )
        except httpx.TimeoutException as exc:
            raise UpstreamFetchError(f"Timed out fetching {what}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"Transport error fetching {what}: {exc}") from exc

        if not response.is_success:
            text = response.text[:_MAX_BODY_CHARS]
            logger.warning(
                "Upstream %s failed with HTTP %d: %s", what, response.status_code, text
            )
            raise UpstreamFetchError(
                f"Failed to fetch {what} (HTTP {response.status_code})",
                status_code=response.status_code,
                body=text,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFetchError(f"Invalid JSON in {what} response") from exc
