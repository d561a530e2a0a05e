"""Asset publication: resolve the files embedded by notes and upload each once.

Every ``AssetRef`` of every note goes through the resolver.  Misses and
resolver errors become :class:`AssetFailure` entries; found files are
de-duplicated by their site path and handed to the asset uploader in one
batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Sequence, Union

from vault_publish.context import PipelineContext
from vault_publish.note import AssetRef, PublishableNote, ResolvedAssetFile
from vault_publish.ports import AssetFileResolver, AssetUploader, Progress

logger = logging.getLogger(__name__)

AssetFailureReason = Literal["not-found", "resolve-error"]


@dataclass(frozen=True)
class AssetFailure:
    note_id: str
    asset: AssetRef
    reason: AssetFailureReason
    message: str = ""


@dataclass(frozen=True)
class AssetsSuccess:
    published_count: int
    failures: list[AssetFailure] = field(default_factory=list)
    type: str = "success"


@dataclass(frozen=True)
class NoAssets:
    type: str = "noAssets"


@dataclass(frozen=True)
class AssetsPublishFailed:
    error: BaseException
    type: str = "error"


AssetsPublicationResult = Union[AssetsSuccess, NoAssets, AssetsPublishFailed]


class PublishAssetsToSite:
    def __init__(self, resolver: AssetFileResolver, uploader: AssetUploader) -> None:
        self._resolver = resolver
        self._uploader = uploader

    def resolve_files(
        self, notes: Sequence[PublishableNote], ctx: PipelineContext | None = None
    ) -> tuple[list[ResolvedAssetFile], list[AssetFailure]]:
        """Resolve every embed; files are unique by ``relative_asset_path``."""
        ctx = ctx or PipelineContext()
        files: dict[str, ResolvedAssetFile] = {}
        failures: list[AssetFailure] = []

        for note in notes:
            log = ctx.child(noteId=note.note_id).logger(__name__)
            for asset in note.assets or ():
                try:
                    resolved = self._resolver.resolve(note, asset)
                except Exception as exc:  # noqa: BLE001
                    log.warning("Failed to resolve asset '%s': %s", asset.target, exc)
                    failures.append(AssetFailure(note.note_id, asset, "resolve-error", str(exc)))
                    continue
                if resolved is None:
                    log.warning("Asset '%s' not found", asset.target)
                    failures.append(AssetFailure(note.note_id, asset, "not-found"))
                    continue
                files.setdefault(resolved.relative_asset_path, resolved)

        return list(files.values()), failures

    async def execute(
        self, notes: Sequence[PublishableNote], progress: Progress | None = None
    ) -> AssetsPublicationResult:
        with_assets = [n for n in notes if n.assets]
        if not with_assets:
            logger.info("No notes with assets, nothing to publish")
            return NoAssets()

        files, failures = self.resolve_files(with_assets)
        if not files:
            logger.info("No asset resolved to a file (%d failure(s))", len(failures))
            return AssetsSuccess(published_count=0, failures=failures)

        if progress:
            progress.start(len(files))
        logger.info("Uploading %d unique asset file(s)", len(files))
        try:
            if not await self._uploader.upload(files):
                raise RuntimeError("Asset uploader reported failure")
        except Exception as exc:  # noqa: BLE001
            logger.error("Asset publication failed: %s", exc)
            if progress:
                progress.finish()
            return AssetsPublishFailed(error=exc)

        if progress:
            progress.advance(len(files))
            progress.finish()
        logger.info("Published %d asset(s), %d failure(s)", len(files), len(failures))
        return AssetsSuccess(published_count=len(files), failures=failures)
