"""Figma REST API client — a DesignSource backed by Figma files.

Fetches node trees and image-fill payloads using Personal Access Token (PAT)
authentication. Protocol and auth details stay here; the engine only sees
raw design trees and image bytes.

Environment:
    FIGMA_TOKEN: Figma Personal Access Token (required)

Usage:
    async with FigmaClient() as client:
        raw = await client.fetch_design_tree(
            "https://www.figma.com/design/6kGd851qaAX4TiL44vpIrO/App?node-id=16650-538"
        )
        payload = await client.fetch_image_bytes(raw_image_ref)
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx

from .. import config, settings
from .figma_converter import IMAGE_REF_SCHEME, figma_document_to_raw

logger = logging.getLogger(__name__)


class FigmaClientError(Exception):
    """Raised when a Figma API call fails.

    Attributes:
        status_code: HTTP status when Figma answered; None for transport
            failures and malformed references.
        retryable: True for timeouts, connection failures, 429 and 5xx.
        retry_after: Seconds from the Retry-After header of a 429, if sent.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after = retry_after


_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

_STATUS_MESSAGES = {
    400: "Figma API rejected the request (400 Bad Request): {path}",
    403: (
        "Figma API returned 403 Forbidden for {path}. Check that FIGMA_TOKEN "
        "is valid and has file_content:read scope."
    ),
    404: "Figma resource not found: {path}",
    429: "Figma API rate limit exceeded on {path}",
}


def _parse_retry_after(value: Any) -> Optional[float]:
    # Only the delta-seconds form; an HTTP-date is ignored
    if not isinstance(value, (str, int, float)):
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def status_error(resp: httpx.Response, path: str) -> FigmaClientError:
    """Map a non-200 Figma response to a FigmaClientError."""
    status = resp.status_code
    template = _STATUS_MESSAGES.get(status)
    if template:
        message = template.format(path=path)
    else:
        message = f"Figma API error {status} on {path}: {resp.text[:200]}"

    retry_after = None
    if status == 429:
        retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
        if retry_after is not None:
            message += f" (retry after {retry_after:g}s)"
    return FigmaClientError(
        message,
        status_code=status,
        retryable=status in _RETRYABLE_STATUSES,
        retry_after=retry_after,
    )


def parse_figma_reference(reference: str) -> Tuple[str, str]:
    """Parse a Figma URL or "fileKey/nodeId" into (file_key, node_id).

    Supports:
        https://www.figma.com/design/{fileKey}/{name}?node-id={nodeId}
        https://www.figma.com/file/{fileKey}/{name}?node-id={nodeId}
        {fileKey}/{nodeId}

    Node ID format: URL uses '16650-538', API uses '16650:538'.
    """
    path_match = re.search(r"figma\.com/(?:design|file)/([a-zA-Z0-9]+)", reference)
    if path_match:
        file_key = path_match.group(1)
        node_match = re.search(r"[?&]node-id=([^&#]+)", reference)
        if not node_match:
            raise FigmaClientError("Figma URL must include a node-id parameter.")
        raw_node_id = unquote(node_match.group(1))
        return file_key, raw_node_id.replace("-", ":")

    file_key, sep, node_id = reference.partition("/")
    if not sep or not file_key or not node_id:
        raise FigmaClientError(
            f"Invalid Figma reference '{reference}'. Expected a Figma URL "
            "or '{fileKey}/{nodeId}'."
        )
    return file_key, unquote(node_id).replace("-", ":")


class FigmaClient:
    """Async Figma REST API client.

    Args:
        token: Figma PAT. Falls back to FIGMA_TOKEN env var.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        timeout: float = settings.FIGMA_HTTP_TIMEOUT,
        base_url: str = config.FIGMA_API_BASE,
    ):
        self._token = token or os.getenv("FIGMA_TOKEN", config.FIGMA_TOKEN)
        if not self._token:
            raise FigmaClientError(
                "Figma token not configured. Set FIGMA_TOKEN environment variable "
                "or pass token= to FigmaClient()."
            )
        self._client: Optional[httpx.AsyncClient] = None
        self._timeout = timeout
        self._base_url = base_url
        # file_key -> {imageRef: url}
        self._image_fills: Dict[str, Dict[str, str]] = {}

    async def __aenter__(self) -> "FigmaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"X-FIGMA-TOKEN": self._token},
                timeout=self._timeout,
                limits=httpx.Limits(
                    max_connections=settings.FIGMA_HTTP_MAX_CONNECTIONS,
                    max_keepalive_connections=settings.FIGMA_HTTP_MAX_KEEPALIVE,
                ),
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        """Make a GET request to the Figma API."""
        client = await self._get_client()
        try:
            resp = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise FigmaClientError(f"Figma API timeout: {path}", retryable=True) from e
        except httpx.TransportError as e:
            raise FigmaClientError(
                f"Figma API connection error: {path}: {e}", retryable=True,
            ) from e

        if resp.status_code != 200:
            error = status_error(resp, path)
            logger.warning(f"_get: {error}")
            raise error
        return resp.json()

    # ------------------------------------------------------------------
    # Core API methods
    # ------------------------------------------------------------------

    async def get_file_nodes(
        self,
        file_key: str,
        node_ids: List[str],
    ) -> Dict[str, Any]:
        """Fetch specific nodes from a Figma file.

        GET /v1/files/:key/nodes?ids=...
        """
        ids_param = ",".join(node_ids)
        data = await self._get(f"/v1/files/{file_key}/nodes", params={"ids": ids_param})
        logger.info(
            f"get_file_nodes: file={file_key}, requested={len(node_ids)}, "
            f"returned={len(data.get('nodes', {}))}"
        )
        return data

    async def get_image_fills(self, file_key: str) -> Dict[str, str]:
        """Resolve every image fill in a file to a download URL.

        GET /v1/files/:key/images (cached per file for the client's lifetime)
        """
        if file_key in self._image_fills:
            return self._image_fills[file_key]

        data = await self._get(f"/v1/files/{file_key}/images")
        if data.get("error"):
            raise FigmaClientError(f"Figma image fill error: {data.get('status')}")
        images = data.get("meta", {}).get("images", {}) or {}
        self._image_fills[file_key] = images
        logger.info(f"get_image_fills: file={file_key}, fills={len(images)}")
        return images

    async def download(self, url: str) -> bytes:
        """Download a rendered/fill image from Figma's CDN (no auth header)."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as dl_client:
                resp = await dl_client.get(url)
        except httpx.TimeoutException as e:
            raise FigmaClientError(f"Image download timeout: {url}", retryable=True) from e
        except httpx.HTTPError as e:
            raise FigmaClientError(f"Image download failed: {url}: {e}", retryable=True) from e
        if resp.status_code != 200:
            raise status_error(resp, url)
        return resp.content

    # ------------------------------------------------------------------
    # DesignSource
    # ------------------------------------------------------------------

    async def fetch_design_tree(self, reference: str) -> Dict[str, Any]:
        """Fetch a node subtree and convert it to the engine's raw tree."""
        file_key, node_id = parse_figma_reference(reference)
        data = await self.get_file_nodes(file_key, [node_id])
        entry = (data.get("nodes") or {}).get(node_id)
        if not entry or not entry.get("document"):
            raise FigmaClientError(
                f"Node '{node_id}' not found in Figma file {file_key}. "
                f"Available nodes: {list((data.get('nodes') or {}).keys())}"
            )
        return figma_document_to_raw(entry["document"], file_key)

    async def fetch_image_bytes(self, reference: str) -> bytes:
        """Fetch an image fill payload.

        reference: "figma-image://{fileKey}/{imageRef}" as produced by the
        converter, or a plain https URL.
        """
        if reference.startswith(("https://", "http://")):
            return await self.download(reference)

        prefix = f"{IMAGE_REF_SCHEME}://"
        if not reference.startswith(prefix):
            raise FigmaClientError(f"Unsupported image reference: {reference}")
        file_key, _, image_ref = reference[len(prefix):].partition("/")
        fills = await self.get_image_fills(file_key)
        url = fills.get(image_ref)
        if not url:
            raise FigmaClientError(f"No download URL for image fill {image_ref}")
        return await self.download(url)
