"""Publish orchestrator: collect, filter, transform, group and upload notes.

Per collected note::

    normalize frontmatter -> evaluate ignore rules -> build note
      -> inline expressions -> sanitize -> assets -> wikilinks -> routing

then, once every note is routed, wikilinks are resolved globally and the
publishable notes are uploaded one batch per target VPS.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Sequence, Union

from vault_publish.assets import detect_note_assets
from vault_publish.config import FolderConfig, PublishSettings, VpsConfig
from vault_publish.context import PipelineContext
from vault_publish.frontmatter import normalize_frontmatter
from vault_publish.ignore_rules import evaluate_ignore_rules
from vault_publish.inline import render_note_expressions
from vault_publish.note import CollectedNote, PublishableNote, title_from_path
from vault_publish.ports import Progress, Uploader, VaultReader
from vault_publish.routing import compute_routing
from vault_publish.errors import UnsupportedSanitizationRule
from vault_publish.sanitizer import CompiledRule, compile_rules, sanitize_note
from vault_publish.wikilinks import detect_note_wikilinks, resolve_wikilinks

logger = logging.getLogger(__name__)


class PublishStage(str, Enum):
    COLLECTING = "collecting"
    FILTERING = "filtering"
    TRANSFORMING = "transforming"
    GROUPING = "grouping"
    UPLOADING = "uploading"
    DONE = "done"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoteFailure:
    note_id: str
    vault_path: str
    message: str


@dataclass(frozen=True)
class PublishSuccess:
    published_count: int
    notes: list[PublishableNote] = field(default_factory=list)
    failures: list[NoteFailure] = field(default_factory=list)
    type: str = "success"


@dataclass(frozen=True)
class NoConfig:
    type: str = "noConfig"


@dataclass(frozen=True)
class MissingVpsConfig:
    folders_without_vps: list[str]
    type: str = "missingVpsConfig"


@dataclass(frozen=True)
class PublishFailed:
    error: BaseException
    type: str = "error"


PublicationResult = Union[PublishSuccess, NoConfig, MissingVpsConfig, PublishFailed]


@dataclass(frozen=True)
class _Collected:
    note: CollectedNote
    folder: FolderConfig
    vps: VpsConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PublishToSite:
    """Runs one publication of every configured folder."""

    def __init__(
        self,
        vault: VaultReader,
        uploader: Uploader,
        *,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._vault = vault
        self._uploader = uploader
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._now = clock or _utcnow
        self.stage = PublishStage.COLLECTING

    def _enter(self, stage: PublishStage) -> None:
        logger.debug("Publish stage: %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(self, settings: PublishSettings, progress: Progress | None = None) -> PublicationResult:
        run_ctx = PipelineContext().child(run=uuid.uuid4().hex[:8])
        log = run_ctx.logger(__name__)
        self.stage = PublishStage.COLLECTING

        if not settings.vps_configs or not settings.folders:
            log.warning("No VPS configs or folders configured")
            return NoConfig()

        collected, missing = await self._collect(settings, run_ctx)
        if missing:
            log.error("Folders referencing unknown VPS configs: %s", ", ".join(missing))
            return MissingVpsConfig(folders_without_vps=missing)

        if progress:
            progress.start(len(collected))
        log.info("Collected %d note(s)", len(collected))

        publishable, failures = self._transform(collected, settings, run_ctx, progress)

        if not publishable:
            log.info("No publishable notes after filtering")
            self._enter(PublishStage.DONE)
            if progress:
                progress.finish()
            return PublishSuccess(published_count=0, failures=failures)

        publishable = resolve_wikilinks(publishable, ctx=run_ctx)

        self._enter(PublishStage.GROUPING)
        groups = self.group_by_vps(publishable)

        self._enter(PublishStage.UPLOADING)
        published = 0
        try:
            for vps_id, notes in groups.items():
                log.info("Uploading %d note(s) to VPS %s", len(notes), vps_id)
                if not await self._uploader.upload(notes):
                    raise RuntimeError(f"Upload failed for VPS ID {vps_id}")
                published += len(notes)
        except Exception as exc:  # noqa: BLE001
            log.error("Publishing aborted after %d note(s): %s", published, exc)
            if progress:
                progress.finish()
            return PublishFailed(error=exc)

        self._enter(PublishStage.DONE)
        log.info("Published %d note(s), %d failure(s)", published, len(failures))
        if progress:
            progress.finish()
        return PublishSuccess(published_count=published, notes=publishable, failures=failures)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _collect(
        self, settings: PublishSettings, ctx: PipelineContext
    ) -> tuple[list[_Collected], list[str]]:
        vps_by_id = settings.vps_by_id()
        collected: list[_Collected] = []
        missing: list[str] = []
        log = ctx.logger(__name__)

        for folder in settings.folders:
            vps = vps_by_id.get(folder.vps_id)
            if vps is None:
                log.warning("Folder %s references unknown VPS %s", folder.id, folder.vps_id)
                missing.append(folder.id)
                continue
            notes = await self._vault.collect_from_folder(folder)
            log.debug("Collected %d note(s) from folder %s", len(notes), folder.id)
            collected.extend(_Collected(note=n, folder=folder, vps=vps) for n in notes)

        return collected, missing

    def _transform(
        self,
        collected: list[_Collected],
        settings: PublishSettings,
        run_ctx: PipelineContext,
        progress: Progress | None,
    ) -> tuple[list[PublishableNote], list[NoteFailure]]:
        publishable: list[PublishableNote] = []
        failures: list[NoteFailure] = []
        compiled: dict[str, list[CompiledRule] | UnsupportedSanitizationRule] = {}

        for item in collected:
            ctx = run_ctx.child(vaultPath=item.note.vault_path)
            self._enter(PublishStage.FILTERING)
            frontmatter = normalize_frontmatter(item.note.frontmatter)
            eligibility = evaluate_ignore_rules(frontmatter, settings.ignore_rules, ctx=ctx)
            if not eligibility.is_publishable:
                if progress:
                    progress.advance(1)
                continue

            self._enter(PublishStage.TRANSFORMING)
            note = PublishableNote(
                note_id=self._new_id(),
                title=title_from_path(item.note.vault_path),
                vault_path=item.note.vault_path,
                relative_path=item.note.relative_path,
                content=item.note.content,
                frontmatter=frontmatter,
                folder_config=item.folder,
                vps_config=item.vps,
                published_at=self._now(),
                eligibility=eligibility,
            )
            try:
                rules = self._folder_rules(item.folder, settings, compiled)
                publishable.append(self.build_note(note, settings, ctx.child(noteId=note.note_id), rules))
            except Exception as exc:  # noqa: BLE001
                ctx.logger(__name__).error("Note transformation failed: %s", exc)
                failures.append(NoteFailure(note.note_id, note.vault_path, str(exc)))
            if progress:
                progress.advance(1)

        return publishable, failures

    @staticmethod
    def _folder_rules(
        folder: FolderConfig,
        settings: PublishSettings,
        cache: dict[str, list[CompiledRule] | UnsupportedSanitizationRule],
    ) -> list[CompiledRule]:
        """Sanitization rules of *folder*, compiled on first use."""
        if folder.id not in cache:
            try:
                cache[folder.id] = compile_rules(settings.rules_for_folder(folder))
            except UnsupportedSanitizationRule as exc:
                cache[folder.id] = exc
        rules = cache[folder.id]
        if isinstance(rules, UnsupportedSanitizationRule):
            raise rules
        return rules

    @staticmethod
    def build_note(
        note: PublishableNote,
        settings: PublishSettings,
        ctx: PipelineContext,
        rules: Sequence[CompiledRule] | None = None,
    ) -> PublishableNote:
        if rules is None:
            rules = compile_rules(settings.rules_for_folder(note.folder_config))
        note = render_note_expressions(note, ctx=ctx)
        note = sanitize_note(
            note,
            rules,
            keys_to_exclude=settings.frontmatter_keys_to_exclude,
            tags_to_exclude=settings.frontmatter_tags_to_exclude,
            ctx=ctx,
        )
        note = detect_note_assets(note, ctx=ctx)
        note = detect_note_wikilinks(note, ctx=ctx)
        return compute_routing(note, ctx=ctx)

    @staticmethod
    def group_by_vps(notes: list[PublishableNote]) -> dict[str, list[PublishableNote]]:
        groups: dict[str, list[PublishableNote]] = {}
        for note in notes:
            groups.setdefault(note.vps_config.id, []).append(note)
        return groups
