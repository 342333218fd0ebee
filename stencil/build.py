"""Site building for Stencil.

Loads configuration and content, renders every page and section in one
batch, and writes the results.

Key functions:
- load_config: Loads site configuration from stencil.yaml.
- create_environment: Builds the template Environment for a project.
- render_batch: Renders many pages, collecting every failure.
- build_site: Main function to build the entire site.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .content import ContentLoader, Section
from .context import build_context
from .environment import Environment
from .errors import CyclicInheritanceError, TemplateError
from .loaders import ChoiceLoader, FileSystemLoader
from .protocols import ContentSource
from .utils import ensure_clean_dir

# Bundled themes live next to this module
THEMES_DIR = Path(__file__).parent / "templates"

DEFAULT_CONFIG: dict[str, Any] = {
    "output_dir": "output",
    "base_url": "",
    "title": "",
    "description": "",
    "theme": "default",
    "generate_feed": False,
    "feed_filename": "atom.xml",
    "strict_blocks": True,
    "workers": 1,
    "extra": {},
}


class BuildError(Exception):
    """Error during site build.

    Attributes:
        failures: Every page that failed to render.
        message: Human-readable summary.
    """

    def __init__(self, message: str, failures: list[PageFailure] | None = None):
        self.message = message
        self.failures = list(failures or [])
        super().__init__(message)


@dataclass(frozen=True)
class RenderJob:
    """One page to render.

    Attributes:
        path: URL path the output is written to.
        template: Template name to render.
        context: Context for the render.
        source: Source file, for error reports.
    """

    path: str
    template: str
    context: dict[str, Any]
    source: Path | None = None


@dataclass(frozen=True)
class PageFailure:
    """A page that failed to render."""

    job: RenderJob
    error: TemplateError


@dataclass
class BatchResult:
    """Result of render_batch.

    Attributes:
        rendered: URL path to rendered HTML, for every page that succeeded.
        failures: Every page that failed, in job order.
    """

    rendered: dict[str, str] = field(default_factory=dict)
    failures: list[PageFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        sections: All sections with their pages.
        output_dir: Directory where the site was built.
        config: Site configuration used for the build.
        written: Files written to the output directory.
    """

    sections: list[Section]
    output_dir: Path
    config: dict[str, Any]
    written: list[Path] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.written)


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from stencil.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        BuildError: If the file is not valid YAML or not a mapping.
    """
    config_path = project_root / "stencil.yaml"
    config = dict(DEFAULT_CONFIG)
    config["extra"] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise BuildError(f"{config_path}: invalid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise BuildError(f"{config_path}: configuration must be a mapping")
        config.update(loaded)
    if not isinstance(config.get("extra"), dict):
        raise BuildError(f"{config_path}: 'extra' must be a mapping")
    return config


def theme_dir(project_root: Path, theme: str) -> Path:
    """Return the templates directory of a theme.

    A ``themes/<name>/templates`` directory in the project wins over a
    bundled theme of the same name.
    """
    local = project_root / "themes" / theme / "templates"
    if local.is_dir():
        return local
    bundled = THEMES_DIR / theme / "templates"
    if bundled.is_dir():
        return bundled
    raise BuildError(f"Unknown theme: {theme}")


def create_environment(project_root: Path, config: dict[str, Any]) -> Environment:
    """Create the Environment for a project: site templates over the theme."""
    loaders = [FileSystemLoader(project_root / "templates")]
    if config.get("theme"):
        loaders.append(FileSystemLoader(theme_dir(project_root, str(config["theme"]))))
    return Environment(ChoiceLoader(loaders), strict_blocks=bool(config.get("strict_blocks", True)))


def render_batch(env: Environment, jobs: list[RenderJob], workers: int = 1) -> BatchResult:
    """Render a batch of pages against one snapshot of the template set.

    The template cache is cleared first so the batch sees current sources;
    during the batch every page sees the same parsed templates. A page that
    fails is recorded and the rest still render, except on cyclic
    inheritance, which aborts the batch.

    Args:
        env: Environment to render with.
        jobs: Pages to render.
        workers: Number of threads; 1 renders in the calling thread.

    Returns:
        BatchResult with rendered output and failures in job order.

    Raises:
        CyclicInheritanceError: If any page's template chain is cyclic.
    """
    env.clear_cache()

    def run(job: RenderJob) -> str | TemplateError:
        try:
            return env.render(job.template, job.context)
        except CyclicInheritanceError:
            raise
        except TemplateError as exc:
            return exc

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(run, jobs))
    else:
        outcomes = [run(job) for job in jobs]

    result = BatchResult()
    for job, outcome in zip(jobs, outcomes):
        if isinstance(outcome, TemplateError):
            result.failures.append(PageFailure(job, outcome))
        else:
            result.rendered[job.path] = outcome
    return result


def collect_jobs(sections: list[Section], config: dict[str, Any]) -> list[RenderJob]:
    """Build one render job per section and per page."""
    jobs: list[RenderJob] = []
    for section in sections:
        jobs.append(
            RenderJob(
                path=section.path,
                template=section.template,
                context=build_context(config, section=section),
                source=section.source_path,
            )
        )
        for page in section.pages:
            jobs.append(
                RenderJob(
                    path=page.path,
                    template=page.template,
                    context=build_context(config, page=page),
                    source=page.source_path,
                )
            )
    return jobs


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    base_url: str | None = None,
    workers: int | None = None,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to include draft pages.
        base_url: Overrides ``base_url`` from the configuration.
        workers: Overrides ``workers`` from the configuration.
        clean_output: Whether to wipe the output directory before building.
        output_dir_override: Optional path to write the build output instead of config output_dir.

    Returns:
        BuildResult containing all sections, output directory, and config.

    Raises:
        BuildError: If any page failed. Pages that rendered are still written.
        CyclicInheritanceError: If a template chain is cyclic.
    """
    config = load_config(project_root)
    if base_url is not None:
        config["base_url"] = base_url
    output_dir = output_dir_override or (project_root / config.get("output_dir", "output"))

    source: ContentSource = ContentLoader(project_root / "content")
    sections = source.load(include_drafts=include_drafts)
    env = create_environment(project_root, config)
    jobs = collect_jobs(sections, config)
    batch = render_batch(env, jobs, workers=int(workers or config.get("workers") or 1))

    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    result = BuildResult(sections=sections, output_dir=output_dir, config=config)
    for url_path, rendered in batch.rendered.items():
        result.written.append(_write_page(output_dir, url_path, rendered))

    if not batch.ok:
        count = len(batch.failures)
        noun = "page" if count == 1 else "pages"
        raise BuildError(f"{count} {noun} failed to render", batch.failures)
    return result


def _write_page(output_dir: Path, url_path: str, rendered: str) -> Path:
    target_dir = output_dir / url_path.strip("/")
    target_dir.mkdir(parents=True, exist_ok=True)
    html_path = target_dir / "index.html"
    with open(html_path, "w", encoding="utf-8") as f:
        f.write(rendered)
    return html_path
