"""Markdown to HTML for published pages.

Before rendering, vault syntax is rewritten into plain markdown/HTML:

* resolved ``[[Note#Sec|label]]`` -> ``[label](/route#Sec)``
* unresolved wikilinks -> their label as text
* ``![[photo.png|center|300]]`` -> ``<img>`` (``<audio>``, ``<video>`` or a
  download link for other kinds) pointing below ``/assets/``

Frontmatter links and embeds are left out of the body; the properties card
renders them as anchors next to their property.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Any

import markdown

from vault_publish.frontmatter import MISSING
from vault_publish.inline import render_value
from vault_publish.note import AssetRef, PublishableNote, ResolvedWikilink

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["extra", "fenced_code", "tables", "sane_lists"]
ASSETS_ROUTE = "/assets"


class PythonMarkdownRenderer:
    """``MarkdownRenderer`` backed by Python-Markdown."""

    def __init__(self, extensions: list[str] | None = None) -> None:
        self.extensions = list(extensions or MARKDOWN_EXTENSIONS)

    async def render(self, text: str) -> str:
        return markdown.markdown(text, extensions=self.extensions)


def _link_label(link: ResolvedWikilink) -> str:
    return link.alias or link.target


def asset_url(target: str) -> str:
    path = target.replace("\\", "/").lstrip("/")
    return f"{ASSETS_ROUTE}/{path}"


def render_asset(asset: AssetRef) -> str:
    """HTML markup for one embed, carrying its display modifiers."""
    src = html.escape(asset_url(asset.target), quote=True)
    name = html.escape(asset.target.rsplit("/", 1)[-1], quote=True)
    display = asset.display

    classes = [f"asset-{asset.kind}"]
    if display.alignment:
        classes.append(f"align-{display.alignment}")
    classes.extend(display.classes)
    class_attr = html.escape(" ".join(classes), quote=True)
    width_attr = f' width="{display.width}"' if display.width else ""

    if asset.kind == "image":
        return f'<img src="{src}" alt="{name}" class="{class_attr}"{width_attr} />'
    if asset.kind == "audio":
        return f'<audio controls src="{src}" class="{class_attr}"></audio>'
    if asset.kind == "video":
        return f'<video controls src="{src}" class="{class_attr}"{width_attr}></video>'
    return f'<a href="{src}" class="{class_attr}" download>{name}</a>'


def link_markdown(note: PublishableNote) -> str:
    """Rewrite the note's wikilinks and embeds in its content."""
    text = note.content

    for asset in note.assets or ():
        if asset.origin == "frontmatter":
            continue
        text = text.replace(asset.raw, render_asset(asset))

    for link in note.resolved_wikilinks or ():
        if link.origin == "frontmatter":
            continue
        label = _link_label(link)
        if link.is_resolved and link.href:
            replacement = f"[{label}]({link.href})"
        else:
            replacement = label
        text = text.replace(link.raw, replacement)

    return text


_TOKEN_RE = re.compile(r"!?\[\[[^\]]+\]\]")


def _frontmatter_refs(refs, path: str) -> dict[str, Any]:
    return {r.raw: r for r in refs or () if r.origin == "frontmatter" and r.frontmatter_path == path}


def render_frontmatter_text(text: str, note: PublishableNote, path: str) -> str:
    """Escape a frontmatter string, turning its links and embeds into anchors."""
    assets = _frontmatter_refs(note.assets, path)
    links = _frontmatter_refs(note.resolved_wikilinks, path)

    parts = []
    last = 0
    for match in _TOKEN_RE.finditer(text):
        parts.append(html.escape(text[last : match.start()]))
        raw = match.group(0)
        asset = assets.get(raw)
        link = links.get(raw)
        if asset is not None:
            href = html.escape(asset_url(asset.target), quote=True)
            parts.append(f'<a class="fm-asset-link" href="{href}">{html.escape(asset.target)}</a>')
        elif link is not None and link.is_resolved and link.href:
            href = html.escape(link.href, quote=True)
            parts.append(f'<a class="fm-wikilink" href="{href}">{html.escape(_link_label(link))}</a>')
        elif link is not None:
            parts.append(f'<span class="fm-wikilink-unresolved">{html.escape(_link_label(link))}</span>')
        else:
            parts.append(html.escape(raw))
        last = match.end()
    parts.append(html.escape(text[last:]))
    return "".join(parts)


def _is_renderable(value: Any) -> bool:
    if value is None or value is MISSING:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return any(_is_renderable(v) for v in value)
    if isinstance(value, dict):
        return any(_is_renderable(v) for v in value.values())
    return True


def _render_property(value: Any, note: PublishableNote, path: str) -> str:
    if isinstance(value, dict):
        return f'<dl class="fm-group">{_property_rows(value, note, path)}</dl>'
    if isinstance(value, (list, tuple)):
        items = [
            _render_property(item, note, f"{path}[{i}]") for i, item in enumerate(value) if _is_renderable(item)
        ]
        return ", ".join(items)
    if isinstance(value, str):
        return render_frontmatter_text(value, note, path)
    return html.escape(render_value(value))


def _property_rows(tree: dict[str, Any], note: PublishableNote, prefix: str = "") -> str:
    rows = []
    for key, value in tree.items():
        if (not prefix and key == "tags") or not _is_renderable(value):
            continue
        path = f"{prefix}.{key}" if prefix else str(key)
        rows.append(f"<dt>{html.escape(str(key))}</dt><dd>{_render_property(value, note, path)}</dd>")
    return "".join(rows)


def _properties_card(note: PublishableNote) -> str:
    rows = _property_rows(note.frontmatter.nested, note)
    if not rows:
        return ""
    return f'<dl class="frontmatter-card">{rows}</dl>\n'


def build_html_page(note: PublishableNote, body_html: str) -> str:
    card = _properties_card(note)
    tags = "".join(f'<span class="tag">{html.escape(t)}</span>' for t in note.frontmatter.tags)
    tag_line = f'<p class="tags">{tags}</p>\n' if tags else ""
    return f"""<div class="markdown-body">
<h1>{html.escape(note.title)}</h1>
{card}{tag_line}{body_html}
</div>"""
