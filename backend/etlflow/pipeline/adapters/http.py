"""
HTTP adapters (httpx) for `api` sources and destinations.

Source config::

    {"apiUrl": "https://api.example.com/orders",
     "headers": {"Authorization": "Bearer ..."},
     "params": {"since": "2024-01-01"},
     "recordsPath": "data.items"}

Destination config::

    {"endpoint": "https://api.example.com/ingest", "method": "POST", "batchSize": 500}

Destination request body: {"mode": "<write mode>", "records": [...]}.
"""

from __future__ import annotations

from typing import Any

import httpx

from etlflow.core.constants import WriteMode
from etlflow.core.logging import get_logger
from etlflow.models.pipeline import Record
from etlflow.pipeline.adapters.base import DestinationAdapter, SourceAdapter, require
from etlflow.pipeline.errors import DestinationError, ExtractionError

logger = get_logger(__name__)

# Default timeout for API calls (seconds)
DEFAULT_TIMEOUT = 30


def _dig(payload: Any, path: str | None) -> Any:
    """Follow a dot-separated path into a JSON payload."""
    if not path:
        return payload
    for key in path.split("."):
        if not isinstance(payload, dict) or key not in payload:
            raise KeyError(path)
        payload = payload[key]
    return payload


class _HttpAdapter:
    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    def _client(self, config: dict[str, Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=config.get("timeout", self._timeout),
            headers=config.get("headers") or {},
        )


class HttpSourceAdapter(_HttpAdapter, SourceAdapter):
    async def extract(self, config: dict[str, Any]) -> list[Record]:
        url = require(config, "apiUrl", "api_url", "url")
        if url is None:
            raise ExtractionError("api source config needs 'apiUrl'")

        method = str(config.get("method", "GET")).upper()
        try:
            async with self._client(config) as client:
                response = await client.request(
                    method,
                    url,
                    params=config.get("params"),
                    json=config.get("body"),
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExtractionError(
                f"API returned {exc.response.status_code}",
                details={"url": url, "status_code": exc.response.status_code, "body": exc.response.text[:500]},
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ExtractionError(f"API request failed: {exc}", details={"url": url}) from exc

        try:
            records = _dig(payload, config.get("recordsPath"))
        except KeyError:
            raise ExtractionError(
                f"Path '{config.get('recordsPath')}' not found in API response",
                details={"url": url},
            ) from None

        if isinstance(records, dict):
            records = [records]
        if not isinstance(records, list):
            raise ExtractionError("API response is not a list of records", details={"url": url})

        logger.debug("API extracted", url=url, records=len(records))
        return records


class HttpDestinationAdapter(_HttpAdapter, DestinationAdapter):
    async def load(self, config: dict[str, Any], records: list[Record], mode: WriteMode) -> int:
        url = require(config, "endpoint", "url", "apiUrl")
        if url is None:
            raise DestinationError("api destination config needs 'endpoint'")

        method = str(config.get("method", "POST")).upper()
        batch_size = int(config.get("batchSize") or len(records) or 1)

        sent = 0
        try:
            async with self._client(config) as client:
                for start in range(0, max(len(records), 1), batch_size):
                    chunk = records[start:start + batch_size]
                    response = await client.request(
                        method,
                        url,
                        json={"mode": str(mode), "records": chunk},
                    )
                    response.raise_for_status()
                    sent += len(chunk)
        except httpx.HTTPStatusError as exc:
            raise DestinationError(
                f"API returned {exc.response.status_code}",
                details={"url": url, "status_code": exc.response.status_code, "sent": sent},
            ) from exc
        except httpx.HTTPError as exc:
            raise DestinationError(f"API request failed: {exc}", details={"url": url, "sent": sent}) from exc

        logger.debug("API loaded", url=url, records=sent, mode=str(mode))
        return sent
