"""Unit tests for vault_publish.vault_reader."""

import logging
import textwrap
from pathlib import Path

import pytest

from vault_publish.config import FolderConfig
from vault_publish.vault_reader import FileSystemVaultReader, parse_frontmatter


def _write_note(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content), encoding="utf-8")


class TestParseFrontmatter:
    def test_no_frontmatter(self):
        assert parse_frontmatter("Just text.") == ({}, "Just text.")

    def test_basic(self):
        meta, body = parse_frontmatter("---\ntitle: T\ntags: [a]\n---\nBody.")
        assert meta == {"title": "T", "tags": ["a"]}
        assert body == "Body."

    def test_invalid_yaml_is_empty(self):
        meta, body = parse_frontmatter("---\nkey: [unclosed\n---\nBody.")
        assert meta == {}
        assert body == "Body."

    def test_scalar_yaml_is_empty(self):
        meta, _ = parse_frontmatter("---\njust a string\n---\nBody.")
        assert meta == {}


@pytest.fixture()
def vault(tmp_path: Path) -> Path:
    _write_note(tmp_path / "Docs" / "Intro.md", """\
        ---
        publish: true
        ---
        Hello.
    """)
    _write_note(tmp_path / "Docs" / "Guide" / "Setup.md", "No frontmatter.\n")
    _write_note(tmp_path / "Docs" / ".trash" / "Old.md", "gone\n")
    _write_note(tmp_path / "Other" / "Skip.md", "elsewhere\n")
    return tmp_path


class TestFileSystemVaultReader:
    @pytest.mark.asyncio
    async def test_collects_folder_recursively(self, vault):
        reader = FileSystemVaultReader(vault)
        notes = await reader.collect_from_folder(FolderConfig(id="d", vps_id="v", vault_folder="Docs"))
        assert [(n.vault_path, n.relative_path) for n in notes] == [
            ("Docs/Guide/Setup.md", "Guide/Setup.md"),
            ("Docs/Intro.md", "Intro.md"),
        ]
        intro = notes[1]
        assert intro.frontmatter == {"publish": True}
        assert intro.content == "Hello.\n"

    @pytest.mark.asyncio
    async def test_missing_folder_is_empty(self, vault):
        reader = FileSystemVaultReader(vault)
        assert await reader.collect_from_folder(FolderConfig(id="d", vps_id="v", vault_folder="Nope")) == []

    @pytest.mark.asyncio
    async def test_undecodable_note_skipped(self, vault, caplog):
        (vault / "Docs" / "Latin.md").write_bytes(b"caf\xe9")
        reader = FileSystemVaultReader(vault)
        with caplog.at_level(logging.WARNING, logger="vault_publish.vault_reader"):
            notes = await reader.collect_from_folder(FolderConfig(id="d", vps_id="v", vault_folder="Docs"))
        assert [n.vault_path for n in notes] == ["Docs/Guide/Setup.md", "Docs/Intro.md"]
        assert "Latin.md" in caplog.text
