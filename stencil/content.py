"""Content loading for Stencil.

Pages are Markdown files with optional YAML frontmatter under the content
directory. A directory holding an ``_index.md`` is a section: a listing
view whose pages are the Markdown files beneath it. The content root is
always a section, whether or not it has an ``_index.md``.

Key classes:
- Page: A single rendered page.
- Section: A listing page with its child pages.
- ContentLoader: Builds sections and pages from a content directory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import mistune
import yaml
from markupsafe import escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .collections import PageCollection
from .utils import extract_date_from_name, is_internal_path, is_markdown, slugify, titleize

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)
SUMMARY_MARKER = "<!-- more -->"
SECTION_INDEX = "_index.md"


class ContentError(Exception):
    """Error while reading a content file.

    Attributes:
        source_path: Path to the file that caused the error.
        message: Human-readable error message.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


@dataclass
class Page:
    """A single page of the site.

    Attributes:
        title: Page title.
        path: URL path, e.g. "/blog/hello/".
        slug: Last URL segment.
        content: Rendered HTML body.
        source_path: Markdown file the page came from.
        section: URL path of the owning section.
        description: Short description for meta tags.
        date: Publication date, if any.
        template: Template used to render the page.
        draft: Whether the page is a draft.
        weight: Manual sort key.
        summary: HTML before the ``<!-- more -->`` marker, if present.
        extra: Free-form frontmatter values.
        taxonomies: Taxonomy name to list of terms.
        earlier: Adjacent older page in the section ordering.
        later: Adjacent newer page in the section ordering.
    """

    title: str
    path: str
    slug: str
    content: str
    source_path: Path
    section: str = "/"
    description: str = ""
    date: datetime | None = None
    template: str = "page.html"
    draft: bool = False
    weight: int = 0
    summary: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    taxonomies: dict[str, list[str]] = field(default_factory=dict)
    earlier: Page | None = field(default=None, repr=False)
    later: Page | None = field(default=None, repr=False)


@dataclass
class Section:
    """A listing page and the pages beneath it.

    Attributes:
        title: Section title.
        path: URL path, e.g. "/blog/".
        content: Rendered HTML body of the ``_index.md``.
        source_path: The ``_index.md`` file, or None for an implicit root.
        description: Short description for meta tags.
        template: Template used to render the section.
        sort_by: "date", "weight", "title" or "none".
        pages: Pages of the section in display order.
        extra: Free-form frontmatter values.
    """

    title: str
    path: str
    content: str = ""
    source_path: Path | None = None
    description: str = ""
    template: str = "section.html"
    sort_by: str = "date"
    pages: list[Page] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


def extract_frontmatter(text: str, path: Path) -> tuple[dict[str, Any], str]:
    """Split YAML frontmatter from the body of a content file.

    Args:
        text: Raw file content.
        path: Source path, for error messages.

    Returns:
        Tuple of (frontmatter dict, remaining content).

    Raises:
        ContentError: If the frontmatter is not a YAML mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise ContentError(path, f"Invalid frontmatter: {exc}") from exc
    if not isinstance(data, dict):
        raise ContentError(path, "Frontmatter must be a mapping")
    return data, text[match.end() :]


def _generate_heading_id(text: str) -> str:
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _AnchoredRenderer(mistune.HTMLRenderer):
    """Markdown renderer with unique heading ids and highlighted code blocks."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced code block, highlighted when it names a known language."""
        lang = info.split()[0] if info and info.strip() else None
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                return highlight(code, lexer, HtmlFormatter(cssclass="highlight"))
        lang_class = f' class="language-{escape(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escape(code)}</code></pre>\n"


def render_markdown(text: str) -> str:
    """Render Markdown to HTML with anchored headings."""
    markdown = mistune.create_markdown(
        renderer=_AnchoredRenderer(), plugins=["strikethrough", "footnotes", "table", "url"]
    )
    return markdown(text)


def _coerce_date(value: Any, path: Path) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise ContentError(path, f"Invalid date: {value!r}") from None
    else:
        raise ContentError(path, f"Invalid date: {value!r}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class ContentLoader:
    """Loads sections and pages from a content directory.

    Attributes:
        content_dir: Directory containing Markdown content.
    """

    def __init__(self, content_dir: Path):
        self.content_dir = content_dir

    def iter_files(self) -> list[Path]:
        """Return every Markdown file that takes part in the build."""
        if not self.content_dir.exists():
            return []
        files: list[Path] = []
        for path in sorted(self.content_dir.rglob("*.md")):
            rel = path.relative_to(self.content_dir)
            if is_internal_path(rel) or not is_markdown(path):
                continue
            files.append(path)
        return files

    def load(self, include_drafts: bool = False) -> list[Section]:
        """Load all sections with their pages attached and ordered.

        Args:
            include_drafts: Whether to include pages marked ``draft: true``.

        Returns:
            Sections, root first, then by URL path.
        """
        files = self.iter_files()
        sections: dict[str, Section] = {}
        for path in files:
            if path.name == SECTION_INDEX:
                section = self._build_section(path)
                sections[section.path] = section
        if "/" not in sections:
            sections["/"] = Section(title="", path="/", template="index.html")

        for path in files:
            if path.name == SECTION_INDEX:
                continue
            page = self._build_page(path, sections)
            sections[page.section].pages.append(page)

        for section in sections.values():
            collection = PageCollection(section.pages)
            if not include_drafts:
                collection = collection.published()
            ordered = collection.sorted_by(section.sort_by)
            ordered.link_adjacent()
            section.pages = list(ordered)

        return [sections[key] for key in sorted(sections, key=lambda p: (p != "/", p))]

    def _read(self, path: Path) -> tuple[dict[str, Any], str]:
        raw = path.read_text(encoding="utf-8")
        return extract_frontmatter(raw, path)

    def _url_for_dir(self, directory: Path) -> str:
        rel = directory.relative_to(self.content_dir)
        segments = [slugify(part) for part in rel.parts]
        return "/" + "".join(f"{segment}/" for segment in segments)

    def _build_section(self, path: Path) -> Section:
        frontmatter, body = self._read(path)
        url = self._url_for_dir(path.parent)
        is_root = url == "/"
        sort_by = str(frontmatter.get("sort_by", "date"))
        if sort_by not in ("date", "weight", "title", "none"):
            raise ContentError(path, f"Unknown sort_by value: {sort_by!r}")
        return Section(
            title=str(frontmatter.get("title", "" if is_root else titleize(path.parent.name))),
            path=url,
            content=render_markdown(body),
            source_path=path,
            description=str(frontmatter.get("description", "")),
            template=str(frontmatter.get("template", "index.html" if is_root else "section.html")),
            sort_by=sort_by,
            extra=dict(frontmatter.get("extra") or {}),
        )

    def _build_page(self, path: Path, sections: dict[str, Section]) -> Page:
        frontmatter, body = self._read(path)
        slug = slugify(str(frontmatter.get("slug", path.stem)))
        parent_url = self._url_for_dir(path.parent)
        section_url = parent_url
        while section_url not in sections:
            section_url = section_url.rstrip("/").rsplit("/", 1)[0] + "/"

        date_value = frontmatter.get("date")
        moment = _coerce_date(date_value, path)
        if moment is None:
            from_name = extract_date_from_name(path.stem)
            moment = from_name.replace(tzinfo=timezone.utc) if from_name else None

        content = render_markdown(body)
        summary = None
        if SUMMARY_MARKER in body:
            summary = render_markdown(body.split(SUMMARY_MARKER, 1)[0])

        try:
            weight = int(frontmatter.get("weight", 0))
        except (TypeError, ValueError):
            raise ContentError(path, "weight must be an integer") from None

        return Page(
            title=str(frontmatter.get("title", titleize(path.name))),
            path=f"{parent_url}{slug}/",
            slug=slug,
            content=content,
            source_path=path,
            section=section_url,
            description=str(frontmatter.get("description", "")),
            date=moment,
            template=str(frontmatter.get("template", "page.html")),
            draft=bool(frontmatter.get("draft", False)),
            weight=weight,
            summary=summary,
            extra=dict(frontmatter.get("extra") or {}),
            taxonomies=dict(frontmatter.get("taxonomies") or {}),
        )
