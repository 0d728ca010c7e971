"""Asset pipeline — discover, fetch, deduplicate and materialize image assets.

1. collect(): walks image nodes in traversal order, fetches every distinct
   source reference once (bounded concurrency, per-attempt timeout, retry
   with exponential backoff), fingerprints the decoded bytes and groups
   nodes sharing identical bytes into one AssetRecord.
2. materialize(): writes each unique payload to the assets directory under
   its stable file name and returns records with resolved paths.

Fetch failures are isolated per asset: after the retry budget is spent the
node gets a placeholder record and a warning. Only assets marked required
abort the run with AssetFetchError.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .. import settings
from ..errors import AssetFetchError
from ..integrations.source import DesignSource
from ..model.document import DesignNode, NodeKind, traverse
from .cache import AssetCache, atomic_write_bytes

logger = logging.getLogger(__name__)

PLACEHOLDER_MEDIA_TYPE = "image/svg+xml"

# 1x1 transparent SVG written for placeholder records
PLACEHOLDER_SVG = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1" '
    b'viewBox="0 0 1 1"/>\n'
)

_SVG_RE = re.compile(rb"^\s*(<\?xml[^>]*>\s*)?(<!--.*?-->\s*)*<svg[\s>]", re.DOTALL)


@dataclass(frozen=True)
class AssetRecord:
    """One unique image payload, shared by every node that shows it."""
    fingerprint: Optional[str]
    file_name: str
    node_ids: Tuple[str, ...]
    source_refs: Tuple[str, ...] = ()
    media_type: str = ""
    placeholder: bool = False
    path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AssetWarning:
    """A non-fatal asset problem surfaced to the validation report."""
    node_id: str
    reference: str
    detail: str
    attempts: int = 0


@dataclass
class FetchOutcome:
    reference: str
    payload: Optional[bytes] = None
    media_type: str = ""
    error: Optional[str] = None
    attempts: int = 0


@dataclass
class CollectResult:
    records: List[AssetRecord] = field(default_factory=list)
    warnings: List[AssetWarning] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------------

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png", "png"),
    (b"\xff\xd8\xff", "image/jpeg", "jpg"),
    (b"GIF87a", "image/gif", "gif"),
    (b"GIF89a", "image/gif", "gif"),
)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    PLACEHOLDER_MEDIA_TYPE: "svg",
}


def sniff_media_type(payload: bytes) -> Optional[str]:
    """Identify an image payload by its signature; None if unrecognized."""
    for magic, media_type, _ in _SIGNATURES:
        if payload.startswith(magic):
            return media_type
    if len(payload) >= 12 and payload[:4] == b"RIFF" and payload[8:12] == b"WEBP":
        return "image/webp"
    if _SVG_RE.match(payload[:512]):
        return PLACEHOLDER_MEDIA_TYPE
    return None


def asset_file_name(digest: str, media_type: str) -> str:
    return f"{digest[:16]}.{_EXTENSIONS.get(media_type, 'bin')}"


def placeholder_file_name(node_id: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]", "_", node_id)
    return f"placeholder-{safe}.svg"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class AssetPipeline:
    """Fetches and deduplicates image payloads for one design tree.

    Args:
        source: DesignSource supplying image bytes.
        max_retries: Retries after the first attempt (attempts = 1 + retries).
        timeout: Per-attempt timeout in seconds.
        cache: Explicit payload cache; a fresh per-run cache when omitted.
        concurrency: Max concurrent fetches.
        retry_base_delay: Backoff base in seconds (doubles per retry).
    """

    def __init__(
        self,
        source: DesignSource,
        max_retries: int,
        timeout: float,
        cache: Optional[AssetCache] = None,
        concurrency: int = settings.ASSET_FETCH_CONCURRENCY,
        retry_base_delay: float = settings.ASSET_RETRY_BASE_DELAY,
        retry_max_delay: float = settings.ASSET_RETRY_MAX_DELAY,
    ):
        self._source = source
        self._max_retries = max(0, max_retries)
        self._timeout = timeout
        self.cache = cache if cache is not None else AssetCache()
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._base_delay = retry_base_delay
        self._max_delay = retry_max_delay

    async def _fetch_once(self, reference: str) -> Tuple[bytes, str]:
        payload = await asyncio.wait_for(
            self._source.fetch_image_bytes(reference), timeout=self._timeout,
        )
        if not payload:
            raise AssetFetchError(f"Empty payload for {reference}", reference=reference)
        media_type = sniff_media_type(payload)
        if media_type is None:
            raise AssetFetchError(
                f"Unrecognized or corrupt image payload for {reference}",
                reference=reference,
            )
        return payload, media_type

    def backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before retry number attempt (1-based).

        A source's retry_after hint raises the delay, capped at the max delay.
        """
        base = min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)
        # +/-25% jitter
        delay = base * (1.0 + random.uniform(-0.25, 0.25))
        if retry_after is not None:
            delay = max(delay, min(retry_after, self._max_delay))
        return delay

    async def fetch(self, reference: str) -> FetchOutcome:
        """Fetch one reference with timeout + bounded retry. Never raises
        for fetch failures; cancellation propagates."""
        attempts = 1 + self._max_retries
        last_error: Optional[str] = None
        retry_after: Optional[float] = None

        async with self._semaphore:
            for attempt in range(attempts):
                if attempt > 0:
                    delay = self.backoff(attempt, retry_after)
                    logger.warning(
                        "fetch: retry %d/%d for %s after %.2fs (previous error: %s)",
                        attempt, self._max_retries, reference, delay, last_error,
                    )
                    await asyncio.sleep(delay)
                try:
                    payload, media_type = await self._fetch_once(reference)
                except asyncio.TimeoutError:
                    last_error = f"timed out after {self._timeout}s"
                    retry_after = None
                    continue
                except Exception as e:
                    last_error = str(e) or type(e).__name__
                    retry_after = getattr(e, "retry_after", None)
                    continue
                return FetchOutcome(
                    reference=reference,
                    payload=payload,
                    media_type=media_type,
                    attempts=attempt + 1,
                )

        logger.warning(
            "fetch: giving up on %s after %d attempts: %s", reference, attempts, last_error,
        )
        return FetchOutcome(reference=reference, error=last_error, attempts=attempts)

    async def collect(self, root: DesignNode) -> CollectResult:
        """Fetch, fingerprint and deduplicate every image node under root.

        Raises:
            AssetFetchError: a required image could not be fetched.
        """
        image_nodes = [
            node for node in traverse(root).nodes()
            if node.kind is NodeKind.IMAGE and node.image is not None
        ]
        references = list(dict.fromkeys(node.image.ref for node in image_nodes))
        outcomes = await asyncio.gather(*(self.fetch(ref) for ref in references))
        by_ref: Dict[str, FetchOutcome] = {o.reference: o for o in outcomes}

        result = CollectResult()
        # fingerprint -> (media_type, node_ids, refs), in first-encounter order
        groups: Dict[str, Tuple[str, List[str], List[str]]] = {}
        required_failure: Optional[Tuple[DesignNode, FetchOutcome]] = None

        for node in image_nodes:
            ref = node.image.ref
            outcome = by_ref[ref]
            if outcome.payload is None:
                if node.image.required:
                    if required_failure is None:
                        required_failure = (node, outcome)
                    continue
                result.warnings.append(AssetWarning(
                    node_id=node.id,
                    reference=ref,
                    detail=outcome.error or "fetch failed",
                    attempts=outcome.attempts,
                ))
                result.records.append(AssetRecord(
                    fingerprint=None,
                    file_name=placeholder_file_name(node.id),
                    node_ids=(node.id,),
                    source_refs=(ref,),
                    media_type=PLACEHOLDER_MEDIA_TYPE,
                    placeholder=True,
                    error=outcome.error,
                ))
                continue

            digest = self.cache.put(outcome.payload)
            media_type, node_ids, refs = groups.setdefault(digest, (outcome.media_type, [], []))
            node_ids.append(node.id)
            if ref not in refs:
                refs.append(ref)

        if required_failure is not None:
            node, outcome = required_failure
            raise AssetFetchError(
                f"Required image for node '{node.id}' could not be fetched "
                f"after {outcome.attempts} attempts: {outcome.error}",
                reference=node.image.ref,
                attempts=outcome.attempts,
                asset_warnings=result.warnings,
            )

        for digest, (media_type, node_ids, refs) in groups.items():
            result.records.append(AssetRecord(
                fingerprint=digest,
                file_name=asset_file_name(digest, media_type),
                node_ids=tuple(node_ids),
                source_refs=tuple(refs),
                media_type=media_type,
            ))

        result.records.sort(key=_record_order(image_nodes))
        logger.info(
            f"collect: {len(image_nodes)} image nodes, {len(references)} refs, "
            f"{len(groups)} unique assets, {len(result.warnings)} placeholders"
        )
        return result

    def materialize(
        self, records: List[AssetRecord], assets_dir: Union[str, Path]
    ) -> List[AssetRecord]:
        """Write payloads under assets_dir and return records with paths.

        Raises:
            AssetFetchError: a non-placeholder record's payload is missing
                from the cache.
        """
        target = Path(assets_dir)
        materialized: List[AssetRecord] = []
        for record in records:
            if record.placeholder:
                payload = PLACEHOLDER_SVG
            else:
                payload = self.cache.get(record.fingerprint)
                if payload is None:
                    raise AssetFetchError(
                        f"Payload {record.fingerprint} for {record.file_name} is not cached",
                        reference=",".join(record.source_refs),
                    )
            path = target / record.file_name
            atomic_write_bytes(path, payload)
            materialized.append(replace(record, path=str(path)))
        logger.info(f"materialize: wrote {len(materialized)} assets to {target}")
        return materialized


def _record_order(image_nodes: List[DesignNode]):
    """Sort key placing records by the traversal index of their first node."""
    position = {node.id: i for i, node in enumerate(image_nodes)}
    return lambda record: position[record.node_ids[0]]


async def collect(
    root: DesignNode,
    source: DesignSource,
    max_retries: int,
    timeout: float,
    cache: Optional[AssetCache] = None,
    **kwargs,
) -> CollectResult:
    """Convenience wrapper: build a pipeline and collect once."""
    pipeline = AssetPipeline(source, max_retries, timeout, cache=cache, **kwargs)
    return await pipeline.collect(root)
