"""Filesystem vault access: note collection and asset lookup."""

from __future__ import annotations

import logging
import mimetypes
import re
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from vault_publish.config import FolderConfig, PublishSettings
from vault_publish.note import AssetRef, CollectedNote, PublishableNote, ResolvedAssetFile

logger = logging.getLogger(__name__)

# YAML front-matter block
_FRONTMATTER_RE = re.compile(r"^---[ \t]*\n(.*?)\n---[ \t]*(?:\n|$)", re.DOTALL)


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split YAML front-matter from body text.

    Returns ``(metadata_dict, body)``; ``metadata_dict`` is empty when there
    is no front-matter block or it does not hold a mapping.
    """
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}, content
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("Invalid frontmatter ignored: %s", exc)
        meta = {}
    if not isinstance(meta, dict):
        meta = {}
    return meta, content[match.end() :]


def _asset_path(target: str) -> PurePosixPath:
    return PurePosixPath(target.replace("\\", "/").lstrip("/"))


def _is_hidden(path: Path, root: Path) -> bool:
    return any(part.startswith(".") for part in path.relative_to(root).parts)


class FileSystemVaultReader:
    """``VaultReader`` over a vault directory on disk."""

    def __init__(self, vault_root: Path | str) -> None:
        self.vault_root = Path(vault_root)

    async def collect_from_folder(self, folder: FolderConfig) -> list[CollectedNote]:
        base = self.vault_root / folder.vault_folder.strip("/\\")
        if not base.is_dir():
            logger.warning("Vault folder %s does not exist", base)
            return []

        notes = []
        for path in sorted(base.glob("**/*.md")):
            if _is_hidden(path, self.vault_root):
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError) as exc:
                logger.warning("Skipping unreadable note %s: %s", path, exc)
                continue
            frontmatter, body = parse_frontmatter(text)
            notes.append(
                CollectedNote(
                    vault_path=path.relative_to(self.vault_root).as_posix(),
                    relative_path=path.relative_to(base).as_posix(),
                    content=body,
                    frontmatter=frontmatter,
                )
            )
        logger.debug("Collected %d note(s) under %s", len(notes), base)
        return notes


class FileSystemAssetResolver:
    """``AssetFileResolver`` looking in the assets folder, then the whole vault."""

    def __init__(self, vault_root: Path | str, assets_folder: str = "assets", *, enable_vault_fallback: bool = True) -> None:
        self.vault_root = Path(vault_root)
        self.assets_folder = assets_folder.strip("/\\")
        self.enable_vault_fallback = enable_vault_fallback

    @classmethod
    def from_settings(cls, vault_root: Path | str, settings: PublishSettings) -> "FileSystemAssetResolver":
        return cls(vault_root, settings.assets_folder, enable_vault_fallback=settings.enable_assets_vault_fallback)

    def _find(self, target: str) -> Path | None:
        relative = _asset_path(target)
        if ".." in relative.parts:
            logger.warning("Asset target '%s' leaves the vault", target)
            return None
        assets_root = self.vault_root / self.assets_folder

        for candidate in (assets_root / relative, assets_root / relative.name):
            if candidate.is_file():
                return candidate

        if not self.enable_vault_fallback:
            return None
        direct = self.vault_root / relative
        if direct.is_file():
            return direct
        for candidate in sorted(self.vault_root.glob(f"**/{relative.name}")):
            if candidate.is_file() and not _is_hidden(candidate, self.vault_root):
                return candidate
        return None

    def resolve(self, note: PublishableNote, asset: AssetRef) -> ResolvedAssetFile | None:
        path = self._find(asset.target)
        if path is None:
            logger.debug("Asset '%s' of '%s' not found", asset.target, note.vault_path)
            return None
        return ResolvedAssetFile(
            vault_path=path.relative_to(self.vault_root).as_posix(),
            file_name=path.name,
            # pages link to /assets/<target>
            relative_asset_path=_asset_path(asset.target).as_posix(),
            content=path.read_bytes(),
            mime_type=mimetypes.guess_type(path.name)[0],
        )
