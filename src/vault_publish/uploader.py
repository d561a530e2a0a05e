"""HTTP uploader for a remote publishing endpoint.

Session API (all ``POST``, JSON, authenticated with ``x-api-key``)
-----------------------------------------------------------------
/api/session/start                 – open a session, returns its id and byte limit
/api/session/{id}/notes/upload     – one chunk of a gzip-compressed notes batch
/api/session/{id}/assets/upload    – one chunk of a gzip-compressed assets batch
/api/session/{id}/finish           – close the session
/api/session/{id}/abort            – discard the session

Each batch of notes is serialized to JSON, gzipped, cut into slices of at
most 5 MiB and sent as base64 chunks; the server reassembles them once
``totalChunks`` have arrived.
"""

from __future__ import annotations

import asyncio
import base64
import gzip
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

import httpx

from vault_publish.asset_publisher import AssetsPublicationResult, AssetsPublishFailed, PublishAssetsToSite
from vault_publish.config import DEFAULT_MAX_BYTES_PER_REQUEST, VpsConfig
from vault_publish.errors import ChunkUploadError, UploadError
from vault_publish.note import PublishableNote, ResolvedAssetFile
from vault_publish.ports import AssetFileResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CHUNK_SIZE = 5 * 1024 * 1024
COMPRESSION_LEVEL = 6
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 10.0

_LIMIT_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(kb|mb)?$", re.IGNORECASE)


def parse_limit(value: Any) -> int:
    """``"5mb"``, ``"512kb"``, ``"1000"`` or a number, in bytes; 8 MiB otherwise."""
    if isinstance(value, bool):
        return DEFAULT_MAX_BYTES_PER_REQUEST
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = _LIMIT_RE.match(value.strip())
        if match:
            number = float(match.group(1))
            unit = (match.group(2) or "").lower()
            if unit == "mb":
                return int(number * 1024 * 1024)
            if unit == "kb":
                return int(number * 1024)
            return int(number)
    return DEFAULT_MAX_BYTES_PER_REQUEST


def json_size_bytes(payload: Any) -> int:
    return len(json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8"))


# ---------------------------------------------------------------------------
# Session client
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StartSessionResponse:
    session_id: str
    max_bytes_per_request: int


class SessionApiClient:
    """Async client for the session API of one VPS."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-api-key": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def for_vps(cls, vps: VpsConfig, **kwargs: Any) -> "SessionApiClient":
        return cls(vps.base_url, api_key=vps.api_key, **kwargs)

    async def _post(self, path: str, body: Any) -> httpx.Response:
        try:
            r = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise UploadError(f"POST {path} failed: {exc}") from exc
        if r.is_error:
            raise UploadError(f"POST {path} returned {r.status_code}: {r.text[:200]}", status_code=r.status_code)
        return r

    async def start_session(
        self, *, notes_planned: int, assets_planned: int = 0, max_bytes_per_request: int = DEFAULT_MAX_BYTES_PER_REQUEST
    ) -> StartSessionResponse:
        r = await self._post(
            "/api/session/start",
            {
                "notesPlanned": notes_planned,
                "assetsPlanned": assets_planned,
                "batchConfig": {"maxBytesPerRequest": max_bytes_per_request},
            },
        )
        data = r.json()
        session = StartSessionResponse(
            session_id=str(data["sessionId"]),
            max_bytes_per_request=parse_limit(data.get("maxBytesPerRequest")),
        )
        logger.info("Session %s started (max %d bytes/request)", session.session_id, session.max_bytes_per_request)
        return session

    async def upload_chunk(self, session_id: str, chunk: dict[str, Any]) -> None:
        await self._post(f"/api/session/{session_id}/notes/upload", chunk)

    async def upload_assets_chunk(self, session_id: str, chunk: dict[str, Any]) -> None:
        await self._post(f"/api/session/{session_id}/assets/upload", chunk)

    async def finish_session(self, session_id: str, *, notes_processed: int, assets_processed: int = 0) -> None:
        await self._post(
            f"/api/session/{session_id}/finish",
            {"notesProcessed": notes_processed, "assetsProcessed": assets_processed},
        )
        logger.info("Session %s finished", session_id)

    async def abort_session(self, session_id: str) -> None:
        await self._post(f"/api/session/{session_id}/abort", {})
        logger.warning("Session %s aborted", session_id)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SessionApiClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


@dataclass
class BatchResult(Generic[T]):
    batches: list[list[T]] = field(default_factory=list)
    oversized: list[T] = field(default_factory=list)


def batch_by_bytes(items: Sequence[T], max_bytes: int, wrap: Callable[[list[T]], Any]) -> BatchResult[T]:
    """Group *items* so that ``wrap(batch)`` serializes to at most *max_bytes*.

    An item too large on its own goes to ``oversized`` instead of a batch.
    """
    if max_bytes <= 0:
        raise ValueError("max_bytes must be > 0")

    result: BatchResult[T] = BatchResult()
    current: list[T] = []
    for item in items:
        tentative = current + [item]
        if json_size_bytes(wrap(tentative)) <= max_bytes:
            current = tentative
            continue
        if current:
            result.batches.append(current)
        current = []
        if json_size_bytes(wrap([item])) > max_bytes:
            result.oversized.append(item)
        else:
            current = [item]

    if current:
        result.batches.append(current)
    return result


# ---------------------------------------------------------------------------
# Chunked upload
# ---------------------------------------------------------------------------


class ChunkedUpload:
    def __init__(
        self,
        *,
        max_chunk_size: int = MAX_CHUNK_SIZE,
        compression_level: int = COMPRESSION_LEVEL,
        retry_attempts: int = RETRY_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_chunk_size = max_chunk_size
        self.compression_level = compression_level
        self.retry_attempts = retry_attempts
        self._sleep = sleep

    @staticmethod
    def retry_delay(attempt: int) -> float:
        return min(RETRY_BASE_DELAY * 2 ** (attempt - 1), RETRY_MAX_DELAY)

    def prepare_upload(self, upload_id: str, data: Any) -> list[dict[str, Any]]:
        """Serialize, gzip and slice *data* into base64 chunks."""
        raw = json.dumps(data, ensure_ascii=False, default=str).encode("utf-8")
        compressed = gzip.compress(raw, compresslevel=self.compression_level)
        total = max(1, -(-len(compressed) // self.max_chunk_size))
        logger.debug(
            "Upload %s: %d bytes, %d compressed, %d chunk(s)", upload_id, len(raw), len(compressed), total
        )

        chunks = []
        for i in range(total):
            piece = compressed[i * self.max_chunk_size : (i + 1) * self.max_chunk_size]
            chunks.append(
                {
                    "metadata": {
                        "uploadId": upload_id,
                        "chunkIndex": i,
                        "totalChunks": total,
                        "originalSize": len(raw),
                        "compressedSize": len(compressed),
                    },
                    "data": base64.b64encode(piece).decode("ascii"),
                }
            )
        return chunks

    async def upload_chunk(self, chunk: dict[str, Any], send: Callable[[dict[str, Any]], Awaitable[None]]) -> None:
        meta = chunk["metadata"]
        last_error: Exception | None = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                await send(chunk)
                return
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                logger.warning(
                    "Chunk %d/%d of %s failed (attempt %d): %s",
                    meta["chunkIndex"], meta["totalChunks"], meta["uploadId"], attempt, exc,
                )
                if attempt < self.retry_attempts:
                    await self._sleep(self.retry_delay(attempt))

        raise ChunkUploadError(
            meta["uploadId"], meta["chunkIndex"], meta["totalChunks"], self.retry_attempts, str(last_error)
        )

    async def upload_all(
        self,
        chunks: Sequence[dict[str, Any]],
        send: Callable[[dict[str, Any]], Awaitable[None]],
        on_progress: Callable[[int, int], None] | None = None,
    ) -> None:
        for i, chunk in enumerate(chunks, start=1):
            await self.upload_chunk(chunk, send)
            if on_progress:
                on_progress(i, len(chunks))


# ---------------------------------------------------------------------------
# Uploaders
# ---------------------------------------------------------------------------


def _wrap_notes(batch: list[PublishableNote]) -> dict[str, Any]:
    return {"notes": [n.to_dict() for n in batch]}


def _asset_payload(file: ResolvedAssetFile) -> dict[str, Any]:
    return {
        "fileName": file.file_name,
        "relativePath": file.relative_asset_path,
        "vaultPath": file.vault_path,
        "mimeType": file.mime_type,
        "contentBase64": base64.b64encode(file.content).decode("ascii"),
    }


def _wrap_assets(batch: list[dict[str, Any]]) -> dict[str, Any]:
    return {"assets": batch}


async def _send_batches(
    chunker: ChunkedUpload,
    items: list[T],
    max_bytes: int,
    wrap: Callable[[list[T]], Any],
    send: Callable[[dict[str, Any]], Awaitable[None]],
) -> int:
    plan = batch_by_bytes(items, max_bytes, wrap)
    # compression usually brings an oversized item under the limit
    batches = plan.batches + [[item] for item in plan.oversized]
    if plan.oversized:
        logger.warning("%d item(s) exceed %d bytes on their own", len(plan.oversized), max_bytes)
    logger.info("Uploading %d item(s) in %d batch(es)", len(items), len(batches))

    sent = 0
    for batch in batches:
        chunks = chunker.prepare_upload(uuid.uuid4().hex, wrap(batch))
        await chunker.upload_all(chunks, send)
        sent += len(batch)
        logger.debug("Batch of %d item(s) uploaded", len(batch))
    return sent


class NotesUploader:
    """``Uploader`` sending notes to a session in byte-bounded, chunked batches."""

    def __init__(
        self,
        client: SessionApiClient,
        session_id: str,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES_PER_REQUEST,
        chunker: ChunkedUpload | None = None,
    ) -> None:
        self.client = client
        self.session_id = session_id
        self.max_bytes = max_bytes
        self.chunker = chunker or ChunkedUpload()
        self.uploaded = 0

    async def upload(self, notes: Sequence[PublishableNote]) -> bool:
        if not notes:
            logger.info("No notes to upload")
            return False

        async def send(chunk: dict[str, Any]) -> None:
            await self.client.upload_chunk(self.session_id, chunk)

        self.uploaded += await _send_batches(self.chunker, list(notes), self.max_bytes, _wrap_notes, send)
        return True


class AssetsUploader:
    """``AssetUploader`` sending base64 files to a session, batched like notes."""

    def __init__(
        self,
        client: SessionApiClient,
        session_id: str,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES_PER_REQUEST,
        chunker: ChunkedUpload | None = None,
    ) -> None:
        self.client = client
        self.session_id = session_id
        self.max_bytes = max_bytes
        self.chunker = chunker or ChunkedUpload()
        self.uploaded = 0

    async def upload(self, files: Sequence[ResolvedAssetFile]) -> bool:
        if not files:
            logger.info("No assets to upload")
            return False

        async def send(chunk: dict[str, Any]) -> None:
            await self.client.upload_assets_chunk(self.session_id, chunk)

        payloads = [_asset_payload(f) for f in files]
        self.uploaded += await _send_batches(self.chunker, payloads, self.max_bytes, _wrap_assets, send)
        return True


class SessionUploader:
    """``Uploader`` running one session per batch on the VPS of its notes.

    start -> notes -> assets (when a resolver is given) -> finish.  Any
    failure after the start aborts the session and propagates.
    """

    def __init__(
        self,
        *,
        client_factory: Callable[[VpsConfig], SessionApiClient] = SessionApiClient.for_vps,
        asset_resolver: AssetFileResolver | None = None,
        max_bytes: int = DEFAULT_MAX_BYTES_PER_REQUEST,
        chunker: ChunkedUpload | None = None,
    ) -> None:
        self._client_factory = client_factory
        self.asset_resolver = asset_resolver
        self.max_bytes = max_bytes
        self.chunker = chunker or ChunkedUpload()
        self.last_assets_result: AssetsPublicationResult | None = None

    async def upload(self, notes: Sequence[PublishableNote]) -> bool:
        if not notes:
            logger.info("No notes to upload")
            return False

        vps = notes[0].vps_config
        async with self._client_factory(vps) as client:
            session = await client.start_session(
                notes_planned=len(notes),
                assets_planned=sum(len(n.assets or ()) for n in notes),
                max_bytes_per_request=self.max_bytes,
            )
            session_id = session.session_id
            try:
                notes_uploader = NotesUploader(
                    client, session_id, max_bytes=session.max_bytes_per_request, chunker=self.chunker
                )
                await notes_uploader.upload(notes)
                assets_processed = await self._upload_assets(client, session_id, session.max_bytes_per_request, notes)
                await client.finish_session(
                    session_id, notes_processed=notes_uploader.uploaded, assets_processed=assets_processed
                )
            except Exception:
                await self._abort(client, session_id)
                raise
        return True

    async def _upload_assets(
        self, client: SessionApiClient, session_id: str, max_bytes: int, notes: Sequence[PublishableNote]
    ) -> int:
        if self.asset_resolver is None:
            return 0
        uploader = AssetsUploader(client, session_id, max_bytes=max_bytes, chunker=self.chunker)
        result = await PublishAssetsToSite(self.asset_resolver, uploader).execute(notes)
        self.last_assets_result = result
        if isinstance(result, AssetsPublishFailed):
            raise result.error
        return uploader.uploaded

    @staticmethod
    async def _abort(client: SessionApiClient, session_id: str) -> None:
        try:
            await client.abort_session(session_id)
        except UploadError as exc:
            logger.error("Could not abort session %s: %s", session_id, exc)
