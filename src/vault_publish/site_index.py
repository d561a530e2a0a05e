"""Static ``index.html`` pages derived from the manifest.

The root index lists top-level folders; every folder gets its own index
listing its subfolders and pages.  Links use the manifest routes, so
``/docs/guide/intro`` lands in ``docs/guide/index.html``.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from vault_publish.manifest import Manifest, ManifestPage

ROOT = "/"


@dataclass
class FolderNode:
    pages: list["ManifestPage"] = field(default_factory=list)
    subfolders: set[str] = field(default_factory=set)

    @property
    def count(self) -> int:
        return len(self.pages) + len(self.subfolders)


@dataclass(frozen=True)
class FolderLink:
    name: str
    link: str
    count: int


def build_folder_tree(manifest: "Manifest") -> dict[str, FolderNode]:
    """Map every folder path (``/``, ``/docs``, ``/docs/guide``) to its node."""
    tree: dict[str, FolderNode] = {ROOT: FolderNode()}

    for page in manifest.pages:
        segments = [s for s in page.route.split("/") if s]
        parent = ROOT
        for i, segment in enumerate(segments[:-1]):
            folder = "/" + "/".join(segments[: i + 1])
            tree.setdefault(folder, FolderNode())
            tree[parent].subfolders.add(segment)
            parent = folder
        tree.setdefault(parent, FolderNode()).pages.append(page)

    return tree


def _child_path(folder: str, name: str) -> str:
    return f"/{name}" if folder == ROOT else f"{folder}/{name}"


def _folder_items(links: Sequence[FolderLink]) -> str:
    return "".join(
        f'<li><a href="{html.escape(d.link)}/index">{html.escape(d.name)} ({d.count})</a></li>'
        for d in sorted(links, key=lambda d: d.name.casefold())
    )


def render_root_index(dirs: Sequence[FolderLink]) -> str:
    items = _folder_items(dirs) or "<li><em>No folders</em></li>"
    return f"""<div class="markdown-body">
  <h1>Folders</h1>
  <ul>{items}</ul>
</div>"""


def render_folder_index(folder_path: str, pages: Sequence["ManifestPage"], subfolders: Sequence[FolderLink]) -> str:
    name = ROOT if folder_path == ROOT else [s for s in folder_path.split("/") if s][-1]
    title = "Home" if name == ROOT else name

    subfolder_items = _folder_items(subfolders) or "<li><em>No subfolders</em></li>"
    page_items = "".join(
        f'<li><a href="{html.escape(p.route)}">{html.escape(p.title)}</a></li>'
        for p in sorted(pages, key=lambda p: p.title.casefold())
    ) or "<li><em>No pages</em></li>"

    return f"""<div class="markdown-body">
  <h1>{html.escape(title)}</h1>
  <section>
    <h2>Subfolders</h2>
    <ul>{subfolder_items}</ul>
  </section>
  <section>
    <h2>Pages</h2>
    <ul>{page_items}</ul>
  </section>
</div>"""


def render_site_index(manifest: "Manifest") -> dict[str, str]:
    """Return ``{relative file path: html}`` for the root and every folder."""
    tree = build_folder_tree(manifest)

    top_level = [
        FolderLink(name=folder.strip("/"), link=folder, count=node.count)
        for folder, node in tree.items()
        if folder != ROOT and folder.count("/") == 1
    ]
    files = {"index.html": render_root_index(top_level)}

    for folder, node in tree.items():
        if folder == ROOT:
            continue
        subfolders = []
        for sub in node.subfolders:
            path = _child_path(folder, sub)
            child = tree.get(path)
            subfolders.append(FolderLink(name=sub, link=path, count=child.count if child else 0))
        files[f"{folder.strip('/')}/index.html"] = render_folder_index(folder, node.pages, subfolders)

    return files
