"""Shared fixtures for vault_publish tests."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from vault_publish.config import FolderConfig, PublishSettings, VpsConfig
from vault_publish.frontmatter import normalize_frontmatter
from vault_publish.note import PublishableNote, title_from_path
from vault_publish.routing import compute_routing

T0 = datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture()
def vps() -> VpsConfig:
    return VpsConfig(id="main", name="Main", base_url="https://notes.example.org", api_key="k")


@pytest.fixture()
def folder() -> FolderConfig:
    return FolderConfig(id="docs", vps_id="main", vault_folder="Docs", route_base="/docs")


@pytest.fixture()
def settings(vps, folder) -> PublishSettings:
    return PublishSettings(vps_configs=[vps], folders=[folder])


@pytest.fixture()
def make_note(vps, folder):
    """Factory for :class:`PublishableNote` values with sensible defaults."""
    counter = itertools.count(1)

    def _make(relative_path="Note.md", content="", frontmatter=None, *, routed=False, note_id=None, **changes):
        note = PublishableNote(
            note_id=note_id or f"n{next(counter)}",
            title=title_from_path(relative_path),
            vault_path=f"{folder.vault_folder}/{relative_path}",
            relative_path=relative_path,
            content=content,
            frontmatter=normalize_frontmatter(frontmatter or {}),
            folder_config=changes.pop("folder_config", folder),
            vps_config=changes.pop("vps_config", vps),
            published_at=changes.pop("published_at", T0),
        )
        if routed:
            note = compute_routing(note)
        return note.evolve(**changes) if changes else note

    return _make


class FakeClock:
    """Returns T0, T0 + 1s, T0 + 2s, ..."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"
