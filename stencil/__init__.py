"""Stencil static site renderer.

Stencil renders HTML pages from templates with single-parent block
inheritance, a small expression language with filters and tests, and
HTML autoescaping. A thin builder loads Markdown content and site
configuration and renders every page in one batch.

The main entry points are Environment.render for the template engine and
the CLI module for building a site.
"""

from .environment import Environment, select_autoescape
from .errors import (
    CyclicInheritanceError,
    FilterError,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedVariableError,
    UnresolvedBlockError,
)
from .loaders import ChoiceLoader, DictLoader, FileSystemLoader

__all__ = [
    "ChoiceLoader",
    "CyclicInheritanceError",
    "DictLoader",
    "Environment",
    "FileSystemLoader",
    "FilterError",
    "TemplateError",
    "TemplateNotFound",
    "TemplateSyntaxError",
    "UndefinedVariableError",
    "UnresolvedBlockError",
    "__version__",
    "select_autoescape",
]
__version__ = "0.1.0"
