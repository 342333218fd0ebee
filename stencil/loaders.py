"""Template loaders for Stencil.

Loaders implement the TemplateLoader protocol: they map a template name to
its raw source and nothing more.

Key classes:
- FileSystemLoader: Reads templates from one or more directories.
- DictLoader: Serves templates from an in-memory mapping.
- ChoiceLoader: Tries several loaders in order (site templates over a theme).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path, PurePosixPath

from .errors import TemplateNotFound, TemplateSyntaxError
from .protocols import TemplateLoader


def split_template_path(name: str) -> list[str]:
    """Split a template name into path segments, rejecting escapes.

    Args:
        name: Template name using forward slashes.

    Returns:
        List of path segments.

    Raises:
        TemplateNotFound: If the name is absolute or climbs out with "..".
    """
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts or not path.parts:
        raise TemplateNotFound(name)
    return [part for part in path.parts if part != "."]


class FileSystemLoader:
    """Loads templates from a list of directories.

    Directories are searched in order and the first match wins, like the
    layouts/partials search path of a site.

    Attributes:
        search_paths: Directories to search.
        encoding: Source file encoding.
    """

    def __init__(self, search_paths: Path | str | Iterable[Path | str], encoding: str = "utf-8"):
        if isinstance(search_paths, (str, Path)):
            search_paths = [search_paths]
        self.search_paths = [Path(p) for p in search_paths]
        self.encoding = encoding

    def get_source(self, name: str) -> str:
        segments = split_template_path(name)
        for base in self.search_paths:
            candidate = base.joinpath(*segments)
            if candidate.is_file():
                try:
                    return candidate.read_text(encoding=self.encoding)
                except UnicodeDecodeError as exc:
                    raise TemplateSyntaxError(
                        f"Template is not valid {self.encoding}: {exc.reason}", name
                    ) from exc
        raise TemplateNotFound(name)

    def list_templates(self) -> list[str]:
        found: set[str] = set()
        for base in self.search_paths:
            if not base.is_dir():
                continue
            for path in base.rglob("*"):
                if path.is_file():
                    found.add(path.relative_to(base).as_posix())
        return sorted(found)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"FileSystemLoader({[str(p) for p in self.search_paths]})"


class DictLoader:
    """Loads templates from a mapping of name to source."""

    def __init__(self, mapping: Mapping[str, str]):
        self.mapping = dict(mapping)

    def get_source(self, name: str) -> str:
        try:
            return self.mapping[name]
        except KeyError:
            raise TemplateNotFound(name) from None

    def list_templates(self) -> list[str]:
        return sorted(self.mapping)


class ChoiceLoader:
    """Tries each loader in turn and returns the first hit."""

    def __init__(self, loaders: Iterable[TemplateLoader]):
        self.loaders = list(loaders)

    def get_source(self, name: str) -> str:
        for loader in self.loaders:
            try:
                return loader.get_source(name)
            except TemplateNotFound:
                continue
        raise TemplateNotFound(name)

    def list_templates(self) -> list[str]:
        found: set[str] = set()
        for loader in self.loaders:
            found.update(loader.list_templates())
        return sorted(found)
