"""Unit and end-to-end tests for asset publication."""

import textwrap
from pathlib import Path

import pytest

from vault_publish.asset_publisher import AssetsPublishFailed, AssetsSuccess, NoAssets, PublishAssetsToSite
from vault_publish.assets import detect_note_assets
from vault_publish.handler import FileSystemAssetStore, FileSystemContentStore, LocalSiteUploader, UploadNotesHandler
from vault_publish.manifest import ManifestFileStore
from vault_publish.note import ResolvedAssetFile
from vault_publish.publisher import PublishFailed, PublishSuccess, PublishToSite
from vault_publish.rendering import PythonMarkdownRenderer
from vault_publish.vault_reader import FileSystemAssetResolver, FileSystemVaultReader


def _file(relative, content=b"data"):
    return ResolvedAssetFile(
        vault_path=f"assets/{relative}", file_name=relative.rsplit("/", 1)[-1], relative_asset_path=relative, content=content
    )


class DictResolver:
    def __init__(self, files):
        self.files = files

    def resolve(self, note, asset):
        found = self.files.get(asset.target)
        if isinstance(found, Exception):
            raise found
        return found


class RecordingAssetUploader:
    def __init__(self, result=True):
        self.batches = []
        self.result = result

    async def upload(self, files):
        self.batches.append(list(files))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class TestPublishAssetsToSite:
    @pytest.mark.asyncio
    async def test_no_assets(self, make_note):
        uploader = RecordingAssetUploader()
        result = await PublishAssetsToSite(DictResolver({}), uploader).execute([make_note(content="plain")])
        assert isinstance(result, NoAssets)
        assert result.type == "noAssets"
        assert uploader.batches == []

    @pytest.mark.asyncio
    async def test_dedupes_and_reports_failures(self, make_note):
        resolver = DictResolver({"a.png": _file("a.png"), "broken.png": OSError("permission denied")})
        notes = [
            detect_note_assets(make_note("A.md", "![[a.png]] ![[missing.png]]", note_id="a")),
            detect_note_assets(make_note("B.md", "![[a.png|center]] ![[broken.png]]", note_id="b")),
        ]
        uploader = RecordingAssetUploader()
        result = await PublishAssetsToSite(resolver, uploader).execute(notes)

        assert isinstance(result, AssetsSuccess)
        assert result.published_count == 1
        assert [[f.relative_asset_path for f in b] for b in uploader.batches] == [["a.png"]]
        assert [(f.note_id, f.asset.target, f.reason) for f in result.failures] == [
            ("a", "missing.png", "not-found"),
            ("b", "broken.png", "resolve-error"),
        ]
        assert "permission denied" in result.failures[1].message

    @pytest.mark.asyncio
    async def test_nothing_resolved_uploads_nothing(self, make_note):
        uploader = RecordingAssetUploader()
        note = detect_note_assets(make_note(content="![[gone.png]]"))
        result = await PublishAssetsToSite(DictResolver({}), uploader).execute([note])
        assert isinstance(result, AssetsSuccess)
        assert result.published_count == 0
        assert uploader.batches == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", [False, RuntimeError("disk full")])
    async def test_uploader_failure_is_an_error_result(self, make_note, outcome):
        note = detect_note_assets(make_note(content="![[a.png]]"))
        result = await PublishAssetsToSite(DictResolver({"a.png": _file("a.png")}), RecordingAssetUploader(outcome)).execute(
            [note]
        )
        assert isinstance(result, AssetsPublishFailed)
        assert result.type == "error"


class TestFileSystemAssetStore:
    @pytest.mark.asyncio
    async def test_writes_below_assets(self, tmp_path):
        store = FileSystemAssetStore(tmp_path)
        assert await store.upload([_file("img/a.png", b"png")]) is True
        assert (tmp_path / "assets" / "img" / "a.png").read_bytes() == b"png"

    def test_rejects_parent_segments(self, tmp_path):
        with pytest.raises(ValueError):
            FileSystemAssetStore(tmp_path).path_for(_file("../../escape.png"))


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


def _write(path: Path, content) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(textwrap.dedent(content), encoding="utf-8")


def _local_uploader(vault_dir, site_dir, settings, clock):
    handler = UploadNotesHandler(
        PythonMarkdownRenderer(), FileSystemContentStore(site_dir), ManifestFileStore(site_dir), clock=clock
    )
    assets = PublishAssetsToSite(
        FileSystemAssetResolver.from_settings(vault_dir, settings), FileSystemAssetStore(site_dir)
    )
    return LocalSiteUploader(handler, "session-1", assets=assets)


@pytest.mark.asyncio
async def test_embedded_assets_published_with_pages(tmp_path, settings, ids, clock):
    vault_dir = tmp_path / "vault"
    site_dir = tmp_path / "site"
    _write(vault_dir / "assets" / "logo.png", b"png-bytes")
    _write(vault_dir / "Docs" / "media" / "song.mp3", b"mp3-bytes")
    _write(vault_dir / "Docs" / "Page.md", """\
        ---
        cover: "![[logo.png]]"
        ---
        ![[logo.png|center]] ![[song.mp3]] ![[missing.gif]]
    """)
    uploader = _local_uploader(vault_dir, site_dir, settings, clock)

    result = await PublishToSite(FileSystemVaultReader(vault_dir), uploader, id_factory=ids, clock=clock).execute(
        settings
    )

    assert isinstance(result, PublishSuccess)
    assert (site_dir / "assets" / "logo.png").read_bytes() == b"png-bytes"
    assert (site_dir / "assets" / "song.mp3").read_bytes() == b"mp3-bytes"
    assets = uploader.last_assets_result
    assert assets.published_count == 2
    assert [f.asset.target for f in assets.failures] == ["missing.gif"]

    page = (site_dir / "docs" / "page.html").read_text(encoding="utf-8")
    assert 'src="/assets/logo.png"' in page
    assert 'src="/assets/song.mp3"' in page
    assert 'href="/assets/logo.png"' in page


@pytest.mark.asyncio
async def test_asset_upload_error_fails_publication(tmp_path, settings, ids):
    class ReadOnlyStore:
        async def upload(self, files):
            raise PermissionError("read-only site")

    vault_dir = tmp_path / "vault"
    _write(vault_dir / "assets" / "logo.png", b"png")
    _write(vault_dir / "Docs" / "Page.md", "![[logo.png]]\n")
    handler = UploadNotesHandler(
        PythonMarkdownRenderer(), FileSystemContentStore(tmp_path / "site"), ManifestFileStore(tmp_path / "site")
    )
    assets = PublishAssetsToSite(FileSystemAssetResolver.from_settings(vault_dir, settings), ReadOnlyStore())
    uploader = LocalSiteUploader(handler, "s1", assets=assets)

    result = await PublishToSite(FileSystemVaultReader(vault_dir), uploader, id_factory=ids).execute(settings)

    assert isinstance(result, PublishFailed)
    assert isinstance(result.error, PermissionError)
