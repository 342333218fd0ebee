from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .content import Page


class PageCollection(Sequence["Page"]):
    """Lightweight helper for ordering the pages of a section."""

    def __init__(self, pages: Iterable[Page]):
        self._pages = list(pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return self._pages[item]

    def published(self) -> PageCollection:
        return PageCollection(p for p in self._pages if not p.draft)

    def sorted_by(self, sort_by: str = "date") -> PageCollection:
        """Order pages for a section listing.

        - "date": newest first; undated pages last, by title.
        - "weight": lightest first, then title.
        - "title": alphabetical, case-insensitive.
        - "none": source order.

        Ties always fall back to the URL path so the order is stable.
        """
        if sort_by == "none":
            return PageCollection(self._pages)
        if sort_by == "weight":
            return PageCollection(
                sorted(self._pages, key=lambda p: (p.weight, p.title.lower(), p.path))
            )
        if sort_by == "title":
            return PageCollection(sorted(self._pages, key=lambda p: (p.title.lower(), p.path)))

        dated = sorted(
            (p for p in self._pages if p.date is not None),
            key=lambda p: (p.date, p.path),
            reverse=True,
        )
        undated = sorted(
            (p for p in self._pages if p.date is None), key=lambda p: (p.title.lower(), p.path)
        )
        return PageCollection(dated + undated)

    def link_adjacent(self) -> None:
        """Set earlier/later on each page from its neighbours by date.

        ``earlier`` is the next older page and ``later`` the next newer one,
        whatever order the collection is listed in. Undated pages get neither.
        """
        dated = sorted(
            (p for p in self._pages if p.date is not None), key=lambda p: (p.date, p.path)
        )
        for page in self._pages:
            page.earlier = None
            page.later = None
        for index, page in enumerate(dated):
            page.earlier = dated[index - 1] if index > 0 else None
            page.later = dated[index + 1] if index + 1 < len(dated) else None

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PageCollection({len(self._pages)} pages)"
