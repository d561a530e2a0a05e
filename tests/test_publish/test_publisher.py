"""Unit and end-to-end tests for vault_publish.publisher."""

import json
import textwrap
from dataclasses import replace
from pathlib import Path

import pytest

from vault_publish import publisher as publisher_module
from vault_publish.config import FolderConfig, IgnoreRule, PublishSettings, SanitizationRule, VpsConfig
from vault_publish.handler import FileSystemContentStore, LocalSiteUploader, UploadNotesHandler
from vault_publish.manifest import ManifestFileStore
from vault_publish.note import CollectedNote
from vault_publish.publisher import (
    MissingVpsConfig,
    NoConfig,
    PublishFailed,
    PublishStage,
    PublishSuccess,
    PublishToSite,
)
from vault_publish.rendering import PythonMarkdownRenderer
from vault_publish.vault_reader import FileSystemVaultReader


class FakeVault:
    def __init__(self, notes_by_folder):
        self.notes_by_folder = notes_by_folder

    async def collect_from_folder(self, folder):
        return list(self.notes_by_folder.get(folder.id, []))


class RecordingUploader:
    def __init__(self, results=None):
        self.batches = []
        self.results = list(results or [])

    async def upload(self, notes):
        self.batches.append(list(notes))
        result = self.results.pop(0) if self.results else True
        if isinstance(result, Exception):
            raise result
        return result


class RecordingProgress:
    def __init__(self):
        self.total = None
        self.advanced = 0
        self.finished = False

    def start(self, total):
        self.total = total

    def advance(self, step=1):
        self.advanced += step

    def finish(self):
        self.finished = True


def _collected(name, content="", frontmatter=None, folder="Docs"):
    return CollectedNote(
        vault_path=f"{folder}/{name}", relative_path=name, content=content, frontmatter=frontmatter or {}
    )


# ---------------------------------------------------------------------------
# Early results
# ---------------------------------------------------------------------------


class TestEarlyResults:
    @pytest.mark.asyncio
    async def test_no_config(self):
        result = await PublishToSite(FakeVault({}), RecordingUploader()).execute(PublishSettings())
        assert isinstance(result, NoConfig)
        assert result.type == "noConfig"

    @pytest.mark.asyncio
    async def test_missing_vps_collects_every_folder(self, vps):
        settings = PublishSettings(
            vps_configs=[vps],
            folders=[
                FolderConfig(id="a", vps_id="ghost", vault_folder="A"),
                FolderConfig(id="b", vps_id="main", vault_folder="B"),
                FolderConfig(id="c", vps_id="other", vault_folder="C"),
            ],
        )
        uploader = RecordingUploader()
        result = await PublishToSite(FakeVault({}), uploader).execute(settings)
        assert isinstance(result, MissingVpsConfig)
        assert result.folders_without_vps == ["a", "c"]
        assert uploader.batches == []


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class TestPublishToSite:
    @pytest.mark.asyncio
    async def test_filters_transforms_and_uploads(self, settings, ids, clock):
        settings.ignore_rules = [IgnoreRule(property="publish", ignore_if=False)]
        vault = FakeVault(
            {
                "docs": [
                    _collected("Guide/Getting Started.md", "Intro by `= this.author`. See [[Other#Top]].", {"author": "Ann"}),
                    _collected("Hidden.md", "secret", {"publish": False}),
                    _collected("Other.md", "![[pic.png|center]]"),
                ]
            }
        )
        uploader = RecordingUploader()
        progress = RecordingProgress()
        publisher = PublishToSite(vault, uploader, id_factory=ids, clock=clock)

        result = await publisher.execute(settings, progress)

        assert isinstance(result, PublishSuccess)
        assert result.published_count == 2
        assert publisher.stage == PublishStage.DONE
        assert progress.total == 3
        assert progress.advanced == 3
        assert progress.finished

        (batch,) = uploader.batches
        first, other = batch
        assert first.note_id == "id-1"
        assert first.title == "Getting Started"
        assert first.content.startswith("Intro by Ann.")
        assert first.routing.full_path == "/docs/guide/getting-started"
        assert first.resolved_wikilinks[0].href == "/docs/other#Top"
        assert first.resolved_wikilinks[0].target_note_id == other.note_id
        assert other.assets[0].display.alignment == "center"
        assert first.published_at < other.published_at

    @pytest.mark.asyncio
    async def test_groups_by_vps_in_first_seen_order(self, ids):
        v1 = VpsConfig(id="v1", name="One", base_url="https://one")
        v2 = VpsConfig(id="v2", name="Two", base_url="https://two")
        settings = PublishSettings(
            vps_configs=[v1, v2],
            folders=[
                FolderConfig(id="f2", vps_id="v2", vault_folder="B"),
                FolderConfig(id="f1", vps_id="v1", vault_folder="A"),
            ],
        )
        vault = FakeVault({"f1": [_collected("a.md", folder="A")], "f2": [_collected("b.md", folder="B")]})
        uploader = RecordingUploader()
        await PublishToSite(vault, uploader, id_factory=ids).execute(settings)
        assert [[n.vps_config.id for n in b] for b in uploader.batches] == [["v2"], ["v1"]]

    @pytest.mark.asyncio
    async def test_transform_failure_recorded_and_excluded(self, settings, folder, ids):
        bad_folder = FolderConfig(
            id="bad", vps_id="main", vault_folder="Bad", sanitization=(SanitizationRule(name="no-such-rule"),)
        )
        settings.folders = [folder, bad_folder]
        vault = FakeVault({"docs": [_collected("ok.md")], "bad": [_collected("x.md", folder="Bad")]})
        uploader = RecordingUploader()
        result = await PublishToSite(vault, uploader, id_factory=ids).execute(settings)

        assert isinstance(result, PublishSuccess)
        assert result.published_count == 1
        assert [(f.note_id, f.vault_path) for f in result.failures] == [("id-2", "Bad/x.md")]
        assert "no-such-rule" in result.failures[0].message

    @pytest.mark.asyncio
    async def test_rules_compiled_once_per_folder(self, settings, monkeypatch):
        calls = []
        compile_rules = publisher_module.compile_rules

        def counting(rules):
            calls.append(list(rules))
            return compile_rules(rules)

        monkeypatch.setattr(publisher_module, "compile_rules", counting)
        rule = SanitizationRule(name="remove-fenced-code-blocks")
        settings.folders = [replace(settings.folders[0], sanitization=(rule,))]
        vault = FakeVault({"docs": [_collected("a.md", "x\n```\none\n```\n"), _collected("b.md", "```\ntwo\n```")]})
        uploader = RecordingUploader()
        await PublishToSite(vault, uploader).execute(settings)

        assert calls == [[rule]]
        assert [n.content.strip() for n in uploader.batches[0]] == ["x", ""]

    @pytest.mark.asyncio
    async def test_nothing_publishable(self, settings):
        settings.ignore_rules = [IgnoreRule(property="publish", ignore_if=False)]
        vault = FakeVault({"docs": [_collected("a.md", frontmatter={"publish": False})]})
        uploader = RecordingUploader()
        result = await PublishToSite(vault, uploader).execute(settings)
        assert isinstance(result, PublishSuccess)
        assert result.published_count == 0
        assert uploader.batches == []

    @pytest.mark.asyncio
    async def test_uploader_false_aborts(self, ids):
        v1 = VpsConfig(id="v1", name="One", base_url="https://one")
        v2 = VpsConfig(id="v2", name="Two", base_url="https://two")
        settings = PublishSettings(
            vps_configs=[v1, v2],
            folders=[FolderConfig(id="f1", vps_id="v1", vault_folder="A"), FolderConfig(id="f2", vps_id="v2", vault_folder="B")],
        )
        vault = FakeVault({"f1": [_collected("a.md", folder="A")], "f2": [_collected("b.md", folder="B")]})
        uploader = RecordingUploader(results=[False])
        progress = RecordingProgress()
        result = await PublishToSite(vault, uploader, id_factory=ids).execute(settings, progress)

        assert isinstance(result, PublishFailed)
        assert "v1" in str(result.error)
        assert len(uploader.batches) == 1
        assert progress.finished

    @pytest.mark.asyncio
    async def test_uploader_exception_becomes_failure(self, settings):
        vault = FakeVault({"docs": [_collected("a.md")]})
        boom = RuntimeError("network down")
        result = await PublishToSite(vault, RecordingUploader(results=[boom])).execute(settings)
        assert isinstance(result, PublishFailed)
        assert result.error is boom


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


class FailingRenderer(PythonMarkdownRenderer):
    async def render(self, text):
        if "BOOM" in text:
            raise RuntimeError("cannot render")
        return await super().render(text)


def _write_note(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content), encoding="utf-8")


@pytest.mark.asyncio
async def test_vault_to_site(tmp_path, settings, ids, clock):
    vault_dir = tmp_path / "vault"
    site_dir = tmp_path / "site"
    _write_note(vault_dir / "Docs" / "Ignored.md", """\
        ---
        publish: false
        ---
        Not for the site.
    """)
    _write_note(vault_dir / "Docs" / "Broken.md", "BOOM\n")
    _write_note(vault_dir / "Docs" / "Guide" / "Welcome.md", """\
        ---
        tags: [intro]
        ---
        # Welcome
    """)
    settings.ignore_rules = [IgnoreRule(property="publish", ignore_if=False)]

    handler = UploadNotesHandler(
        FailingRenderer(), FileSystemContentStore(site_dir), ManifestFileStore(site_dir), clock=clock
    )
    uploader = LocalSiteUploader(handler, "session-1")
    result = await PublishToSite(FileSystemVaultReader(vault_dir), uploader, id_factory=ids, clock=clock).execute(
        settings
    )

    assert isinstance(result, PublishSuccess)
    broken_id = next(n.note_id for n in result.notes if n.vault_path == "Docs/Broken.md")
    site = uploader.last_result
    assert site.published == 1
    assert [e.note_id for e in site.errors] == [broken_id]

    manifest = json.loads((site_dir / "_manifest.json").read_text(encoding="utf-8"))
    assert [p["route"] for p in manifest["pages"]] == ["/docs/guide/welcome"]
    assert manifest["pages"][0]["tags"] == ["intro"]
    assert (site_dir / "docs" / "guide" / "welcome.html").exists()
    assert (site_dir / "index.html").exists()
