import asyncio
import logging
from pathlib import Path

import httpx
import typer

from .archive import repo_archive_filter, strip_count
from .models import Example, MalformedUrl, NotAUrl, Settings
from .resolver import EchoReporter, resolve_template_arg
from .utils import (
    ensure_gitignore,
    get_repo_info,
    list_examples,
    load_settings,
    parse_template_url,
    url_origin,
)


app = typer.Typer(
    help="Create projects from GitHub repositories or curated examples.",
    no_args_is_help=True,
)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="Path to a config.toml (default: $XDG_CONFIG_HOME/tplfetch/config.toml)",
)


def http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(follow_redirects=True)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


async def _fetch_examples(settings: Settings) -> list[Example]:
    async with http_client() as client:
        return await list_examples(client, settings)


def prompt_template(settings: Settings) -> str | None:
    """Ask how to start; returns an example name, or None for the default app."""
    typer.echo("How would you like to start?")
    typer.echo("  1: Default new app")
    typer.echo("  2: Examples from GitHub")
    choice = typer.prompt("Enter number (1-2)", type=int, default=1)
    if choice not in (1, 2):
        typer.echo("\nPlease specify the template.")
        raise typer.Exit(code=1)
    if choice == 1:
        return None

    try:
        examples = asyncio.run(_fetch_examples(settings))
    except (httpx.HTTPError, ValueError) as e:
        typer.echo("\nFailed to fetch the list of examples with the following error:")
        typer.echo(str(e), err=True)
        typer.echo("\nSwitching to the default starter app\n")
        return None
    if not examples:
        typer.echo("\nNo examples available. Switching to the default starter app\n")
        return None

    typer.echo("\nPick an example:")
    for i, example in enumerate(examples, 1):
        typer.echo(f"  {i}: {example.name}")
    pick = typer.prompt(f"Enter number (1-{len(examples)})", type=int)
    if pick < 1 or pick > len(examples):
        typer.echo("\nPlease specify an example or use the default starter app.")
        raise typer.Exit(code=1)
    return examples[pick - 1].name.strip()


async def _create(
    project_root: Path,
    template: str | None,
    template_path: str | None,
    settings: Settings,
) -> bool:
    async with http_client() as client:
        return await resolve_template_arg(
            project_root,
            EchoReporter(),
            template,
            template_path,
            client=client,
            settings=settings,
        )


@app.command()
def create(
    project_dir: Path = typer.Argument(..., help="Directory for the new project"),
    template: str | None = typer.Option(
        None,
        "--template",
        "-t",
        help="GitHub URL (https://github.com/user/repo[/tree/branch/path]) or example name",
    ),
    template_path: str | None = typer.Option(
        None,
        "--template-path",
        "-p",
        help="Path of the template inside the repository (needed for branches containing '/')",
    ),
    config: Path | None = CONFIG_OPTION,
) -> None:
    """
    Create a project from a GitHub repository URL or a named example.
    """
    settings = load_settings(config)
    if template_path and not template:
        raise typer.BadParameter("--template-path requires --template")
    if template is None:
        template = prompt_template(settings)

    project_root = project_dir.resolve()
    project_root.mkdir(parents=True, exist_ok=True)

    if not asyncio.run(_create(project_root, template, template_path, settings)):
        typer.echo("Using the default starter app.")
        ensure_gitignore(project_root)
    typer.echo(f"Project created at {project_root}")


@app.command("examples")
def examples_cmd(config: Path | None = CONFIG_OPTION) -> None:
    """
    List the examples that can be passed to `create --template`.
    """
    settings = load_settings(config)
    try:
        examples = asyncio.run(_fetch_examples(settings))
    except (httpx.HTTPError, ValueError) as e:
        typer.echo(f"Failed to fetch the list of examples: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(f"Examples in {settings.examples_repo}:")
    for example in examples:
        typer.echo(f"  {example.name}")


async def _repo_info(url, template_path: str | None, settings: Settings):
    async with http_client() as client:
        return await get_repo_info(client, url, template_path, settings)


@app.command()
def info(
    url: str = typer.Argument(..., help="GitHub repository URL"),
    template_path: str | None = typer.Option(None, "--template-path", "-p"),
    config: Path | None = CONFIG_OPTION,
) -> None:
    """
    Show how a GitHub URL would be resolved, without downloading anything.
    """
    settings = load_settings(config)
    parsed = parse_template_url(url)
    if (
        isinstance(parsed, (NotAUrl, MalformedUrl))
        or url_origin(parsed) != settings.web_origin
    ):
        typer.echo(f'Not a GitHub URL: "{url}"')
        raise typer.Exit(code=1)

    repo_info = asyncio.run(_repo_info(parsed, template_path, settings))
    if repo_info is None:
        typer.echo(f'Found invalid GitHub URL: "{url}"')
        raise typer.Exit(code=1)

    typer.echo(f"owner:  {repo_info.owner}")
    typer.echo(f"repo:   {repo_info.name}")
    typer.echo(f"branch: {repo_info.branch}")
    typer.echo(f"path:   {repo_info.file_path or '(repository root)'}")
    typer.echo(f"strip:  {strip_count(repo_info.file_path)}")
    typer.echo(f"filter: {repo_archive_filter(repo_info)}")
