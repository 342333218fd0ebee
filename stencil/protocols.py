"""Protocol definitions for Stencil.

These protocols keep the renderer independent of where template source
and page content come from:
- TemplateLoader: raw template source by name (files, memory, themes).
- ContentSource: page and section data for a build.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .content import Section


@runtime_checkable
class TemplateLoader(Protocol):
    """Protocol for loading raw template source.

    Loaders only read. Parsing and caching belong to the Environment.
    """

    @abstractmethod
    def get_source(self, name: str) -> str:
        """Return the source of a template.

        Args:
            name: Template identifier, e.g. "base.html" or "partials/nav.html".

        Returns:
            Raw template source.

        Raises:
            TemplateNotFound: If the loader has no such template.
        """
        ...

    @abstractmethod
    def list_templates(self) -> list[str]:
        """Return the names of all templates this loader can provide."""
        ...


@runtime_checkable
class ContentSource(Protocol):
    """Protocol for supplying the sections (and their pages) of a site."""

    @abstractmethod
    def load(self, include_drafts: bool = False) -> list[Section]:
        """Load every section of the site.

        Args:
            include_drafts: Whether to include pages marked as drafts.

        Returns:
            Sections with their pages attached, root section first.
        """
        ...
