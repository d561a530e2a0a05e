"""Publish settings: dataclasses, YAML loading and validation.

A settings file looks like::

    vps:
      - id: main
        name: Main site
        baseUrl: https://notes.example.org
        apiKey: s3cret
        cleanupRules:
          - id: no-code
            name: remove-fenced-code-blocks
            isEnabled: true

    folders:
      - id: docs
        vpsId: main
        vaultFolder: Docs
        routeBase: /docs

    ignoreRules:
      - property: publish
        ignoreIf: false
      - property: type
        ignoreValues: [draft, private]

Keys may also be written in snake_case (``base_url``, ``route_base``...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Union

import yaml

from vault_publish.errors import ConfigError

Primitive = Union[str, int, float, bool, None]

DEFAULT_MAX_BYTES_PER_REQUEST = 8 * 1024 * 1024


@dataclass(frozen=True)
class IgnoreRule:
    property: str
    ignore_if: bool | None = None
    ignore_values: tuple[Primitive, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"property": self.property}
        if self.ignore_if is not None:
            data["ignoreIf"] = self.ignore_if
        if self.ignore_values is not None:
            data["ignoreValues"] = list(self.ignore_values)
        return data


@dataclass(frozen=True)
class SanitizationRule:
    name: str
    regex: str = ""
    replacement: str = ""
    is_enabled: bool = True
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "regex": self.regex,
            "replacement": self.replacement,
            "isEnabled": self.is_enabled,
        }


@dataclass(frozen=True)
class FolderConfig:
    id: str
    vps_id: str
    vault_folder: str
    route_base: str = ""
    #: Folder-level rules; ``None`` means "inherit the VPS cleanup rules"
    sanitization: tuple[SanitizationRule, ...] | None = None
    ignored_cleanup_rule_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vpsId": self.vps_id,
            "vaultFolder": self.vault_folder,
            "routeBase": self.route_base,
            "sanitization": None if self.sanitization is None else [r.to_dict() for r in self.sanitization],
            "ignoredCleanupRuleIds": list(self.ignored_cleanup_rule_ids),
        }


@dataclass(frozen=True)
class VpsConfig:
    id: str
    name: str
    base_url: str
    api_key: str = ""
    cleanup_rules: tuple[SanitizationRule, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        # the API key never leaves the publishing host
        return {"id": self.id, "name": self.name, "baseUrl": self.base_url}


@dataclass
class PublishSettings:
    vps_configs: list[VpsConfig] = field(default_factory=list)
    folders: list[FolderConfig] = field(default_factory=list)
    ignore_rules: list[IgnoreRule] = field(default_factory=list)
    assets_folder: str = "assets"
    enable_assets_vault_fallback: bool = True
    frontmatter_keys_to_exclude: list[str] = field(default_factory=list)
    frontmatter_tags_to_exclude: list[str] = field(default_factory=list)
    max_bytes_per_request: int = DEFAULT_MAX_BYTES_PER_REQUEST

    def vps_by_id(self) -> dict[str, VpsConfig]:
        return {v.id: v for v in self.vps_configs if v.id}

    def rules_for_folder(self, folder: FolderConfig) -> list[SanitizationRule]:
        """Folder rules when set, else the VPS cleanup rules the folder does not opt out of."""
        if folder.sanitization is not None:
            return list(folder.sanitization)
        vps = self.vps_by_id().get(folder.vps_id)
        if vps is None:
            return []
        ignored = set(folder.ignored_cleanup_rule_ids)
        return [r for r in vps.cleanup_rules if not r.id or r.id not in ignored]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _normalize_url(url: str) -> str:
    return url.strip().lower().rstrip("/")


def validate_settings(settings: PublishSettings) -> None:
    """Raise :class:`ConfigError` when a configuration invariant is broken."""
    if not settings.vps_configs:
        raise ConfigError("At least one VPS configuration is required")

    seen_names: set[str] = set()
    seen_urls: set[str] = set()
    for vps in settings.vps_configs:
        if vps.name in seen_names:
            raise ConfigError(f'VPS name "{vps.name}" is already used by another VPS')
        seen_names.add(vps.name)

        url = _normalize_url(vps.base_url)
        if url in seen_urls:
            raise ConfigError(f'VPS URL "{vps.base_url}" is already used by another VPS')
        seen_urls.add(url)

    for vps in settings.vps_configs:
        if not any(f.vps_id == vps.id for f in settings.folders):
            raise ConfigError(f'VPS "{vps.name}" must have at least one folder')

    for folder in settings.folders:
        if ".." in folder.route_base.strip().replace("\\", "/").split("/"):
            raise ConfigError(f'Folder "{folder.id}" route base "{folder.route_base}" must not contain ".."')


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _get(mapping: Mapping[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in mapping:
        return mapping[camel]
    return mapping.get(snake, default)


def _require(mapping: Mapping[str, Any], camel: str, snake: str) -> Any:
    value = _get(mapping, camel, snake)
    if value in ("", None):
        raise ConfigError(f"Missing required configuration field: {camel}")
    return value


def _build_sanitization_rule(raw: Mapping[str, Any]) -> SanitizationRule:
    return SanitizationRule(
        id=str(raw.get("id") or ""),
        name=str(_require(raw, "name", "name")),
        regex=str(raw.get("regex") or ""),
        replacement=str(raw.get("replacement") or ""),
        is_enabled=bool(_get(raw, "isEnabled", "is_enabled", True)),
    )


def _build_ignore_rule(raw: Mapping[str, Any]) -> IgnoreRule:
    ignore_values = _get(raw, "ignoreValues", "ignore_values")
    if ignore_values is not None and not isinstance(ignore_values, list):
        ignore_values = [ignore_values]
    return IgnoreRule(
        property=str(_require(raw, "property", "property")),
        ignore_if=_get(raw, "ignoreIf", "ignore_if"),
        ignore_values=tuple(ignore_values) if ignore_values is not None else None,
    )


def _build_folder(raw: Mapping[str, Any]) -> FolderConfig:
    sanitization = raw.get("sanitization")
    return FolderConfig(
        id=str(_require(raw, "id", "id")),
        vps_id=str(_get(raw, "vpsId", "vps_id", "") or ""),
        vault_folder=str(_get(raw, "vaultFolder", "vault_folder", "") or ""),
        route_base=str(_get(raw, "routeBase", "route_base", "") or ""),
        sanitization=None if sanitization is None else tuple(_build_sanitization_rule(r) for r in sanitization),
        ignored_cleanup_rule_ids=tuple(_get(raw, "ignoredCleanupRuleIds", "ignored_cleanup_rule_ids", []) or []),
    )


def _build_vps(raw: Mapping[str, Any]) -> VpsConfig:
    return VpsConfig(
        id=str(_require(raw, "id", "id")),
        name=str(_require(raw, "name", "name")),
        base_url=str(_require(raw, "baseUrl", "base_url")),
        api_key=str(_get(raw, "apiKey", "api_key", "") or ""),
        cleanup_rules=tuple(
            _build_sanitization_rule(r) for r in (_get(raw, "cleanupRules", "cleanup_rules", []) or [])
        ),
    )


def settings_from_dict(raw: Mapping[str, Any]) -> PublishSettings:
    """Build :class:`PublishSettings` from a parsed mapping (no validation)."""
    return PublishSettings(
        vps_configs=[_build_vps(v) for v in (raw.get("vps") or [])],
        folders=[_build_folder(f) for f in (raw.get("folders") or [])],
        ignore_rules=[_build_ignore_rule(r) for r in (_get(raw, "ignoreRules", "ignore_rules", []) or [])],
        assets_folder=str(_get(raw, "assetsFolder", "assets_folder", "assets") or "assets"),
        enable_assets_vault_fallback=bool(
            _get(raw, "enableAssetsVaultFallback", "enable_assets_vault_fallback", True)
        ),
        frontmatter_keys_to_exclude=list(
            _get(raw, "frontmatterKeysToExclude", "frontmatter_keys_to_exclude", []) or []
        ),
        frontmatter_tags_to_exclude=list(
            _get(raw, "frontmatterTagsToExclude", "frontmatter_tags_to_exclude", []) or []
        ),
        max_bytes_per_request=int(
            _get(raw, "maxBytesPerRequest", "max_bytes_per_request", DEFAULT_MAX_BYTES_PER_REQUEST)
        ),
    )


def load_config(path: str | Path) -> PublishSettings:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, Mapping):
        raise ConfigError(f"Configuration root must be a mapping: {path}")

    settings = settings_from_dict(raw)
    validate_settings(settings)
    return settings
