"""Render context construction.

The context a template sees is rebuilt for every page from two inputs: the
site configuration and the page (or section) being rendered. Optional
values that are missing (a page without a date, the first page of a
section without a later page) are left out entirely, so templates can test
them with ``is defined`` or a plain ``if``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from markupsafe import Markup

from .content import Page, Section
from .utils import join_root_url


def permalink(config: Mapping[str, Any], path: str) -> str:
    return join_root_url(str(config.get("base_url") or ""), path)


def page_summary(page: Page, config: Mapping[str, Any]) -> dict[str, Any]:
    """Context data for a page as seen from another page or a listing."""
    data: dict[str, Any] = {
        "title": page.title,
        "description": page.description,
        "path": page.path,
        "permalink": permalink(config, page.path),
        "slug": page.slug,
        "extra": page.extra,
        "taxonomies": page.taxonomies,
    }
    if page.date is not None:
        data["date"] = page.date
    if page.summary is not None:
        data["summary"] = Markup(page.summary)
    return data


def page_context(page: Page, config: Mapping[str, Any]) -> dict[str, Any]:
    data = page_summary(page, config)
    data["content"] = Markup(page.content)
    if page.earlier is not None:
        data["earlier"] = page_summary(page.earlier, config)
    if page.later is not None:
        data["later"] = page_summary(page.later, config)
    return data


def section_context(section: Section, config: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "title": section.title,
        "description": section.description,
        "path": section.path,
        "permalink": permalink(config, section.path),
        "content": Markup(section.content),
        "pages": [page_summary(page, config) for page in section.pages],
        "extra": section.extra,
    }


def build_context(
    config: Mapping[str, Any],
    page: Page | None = None,
    section: Section | None = None,
) -> dict[str, Any]:
    """Assemble the context for one render.

    Args:
        config: Site configuration, exposed as ``config``.
        page: Page being rendered, exposed as ``page``.
        section: Section being rendered, exposed as ``section``.

    Returns:
        A new dict; the caller's config is not copied deeply but is never
        modified by rendering.
    """
    context: dict[str, Any] = {"config": config}
    path = "/"
    if page is not None:
        context["page"] = page_context(page, config)
        path = page.path
    if section is not None:
        context["section"] = section_context(section, config)
        if page is None:
            path = section.path
    context["current_path"] = path
    context["current_url"] = permalink(config, path)
    return context
