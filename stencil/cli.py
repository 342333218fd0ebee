"""Command-line interface for Stencil.

Commands:
- new: Scaffold a new Stencil project.
- build: Build the site into the output directory.
- render: Render one template against a YAML context and print it.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import click
import yaml

from . import __version__

# Path to the scaffold for new projects
_SCAFFOLD_DIR = Path(__file__).parent / "templates" / "default"


@click.group()
@click.version_option(version=__version__, prog_name="stencil")
def cli():
    """Stencil static site renderer."""


@cli.command()
@click.argument("name")
def new(name: str):
    """Scaffold a new Stencil project."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target}"
        )
    _scaffold(target)
    click.echo(f"New Stencil site created at {target}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--base-url", default=None, help="Override base_url from stencil.yaml")
@click.option("--workers", type=int, default=None, help="Render pages on N threads")
def build(drafts: bool, base_url: str | None, workers: int | None):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import BuildError, build_site
    from .content import ContentError
    from .errors import CyclicInheritanceError

    try:
        result = build_site(
            project_root, include_drafts=drafts, base_url=base_url, workers=workers
        )
    except BuildError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  {exc.message}", fg="white"), err=True)
        for failure in exc.failures:
            source = failure.job.source
            label = _relative(source, project_root) if source else failure.job.path
            click.echo(click.style(f"  Page: {label}", fg="yellow"), err=True)
            click.echo(click.style(f"    Error: {failure.error}", fg="white"), err=True)
        raise SystemExit(1) from None
    except CyclicInheritanceError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Error: {exc}", fg="white"), err=True)
        raise SystemExit(1) from None
    except ContentError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(
            click.style(f"  File: {_relative(exc.source_path, project_root)}", fg="yellow"),
            err=True,
        )
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None
    click.echo(f"Built {result.page_count} pages into {result.output_dir}")


@cli.command()
@click.argument("template")
@click.option(
    "--templates",
    "templates_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default="templates",
    show_default=True,
    help="Directory to load templates from",
)
@click.option(
    "--data",
    "data_file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=None,
    help="YAML file with the render context",
)
def render(template: str, templates_dir: Path, data_file: Path | None):
    """Render TEMPLATE against a YAML context and print the result."""
    from .environment import Environment
    from .errors import TemplateError
    from .loaders import FileSystemLoader

    context = {}
    if data_file is not None:
        with open(data_file, encoding="utf-8") as f:
            try:
                context = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise click.ClickException(f"{data_file}: invalid YAML: {exc}") from exc
        if not isinstance(context, dict):
            raise click.ClickException(f"{data_file}: context must be a mapping")

    env = Environment(FileSystemLoader(templates_dir))
    try:
        output = env.render(template, context)
    except TemplateError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(output, nl=False)


def _relative(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Create the directory structure and files for a new Stencil project.

    Content and configuration are copied from the default theme. The theme's
    templates stay in the package; the project gets an empty templates/
    directory for overrides.
    """
    for src_path in _SCAFFOLD_DIR.rglob("*"):
        if src_path.is_dir():
            continue
        rel_path = src_path.relative_to(_SCAFFOLD_DIR)
        if rel_path.parts[0] == "templates":
            continue
        dest_path = root / rel_path
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_path, dest_path)
    (root / "templates").mkdir(parents=True, exist_ok=True)
