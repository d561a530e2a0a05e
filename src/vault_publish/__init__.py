"""Publish folders of a markdown vault as a static site."""

from vault_publish.asset_publisher import PublishAssetsToSite
from vault_publish.config import PublishSettings, load_config
from vault_publish.handler import FileSystemAssetStore, LocalSiteUploader, UploadNotesHandler
from vault_publish.manifest import Manifest, ManifestFileStore, merge_manifest
from vault_publish.note import PublishableNote
from vault_publish.publisher import PublishToSite
from vault_publish.uploader import SessionUploader
from vault_publish.vault_reader import FileSystemAssetResolver, FileSystemVaultReader

__all__ = [
    "PublishSettings",
    "load_config",
    "PublishableNote",
    "PublishToSite",
    "PublishAssetsToSite",
    "Manifest",
    "ManifestFileStore",
    "merge_manifest",
    "UploadNotesHandler",
    "LocalSiteUploader",
    "FileSystemAssetStore",
    "SessionUploader",
    "FileSystemVaultReader",
    "FileSystemAssetResolver",
]
