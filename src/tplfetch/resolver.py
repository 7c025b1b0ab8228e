import logging
import tarfile
from pathlib import Path

import httpx
import typer

from .archive import download_and_extract_example, download_and_extract_repo
from .models import Failure, FailureKind, MalformedUrl, NotAUrl, Resolved, Settings
from .utils import (
    ensure_gitignore,
    get_repo_info,
    has_example,
    has_repo,
    parse_template_url,
    url_origin,
)

logger = logging.getLogger(__name__)


class EchoReporter:
    """Status reporter for the terminal: progress text and fatal errors."""

    def __init__(self) -> None:
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, value: str) -> None:
        self._text = value
        typer.secho(value, bold=True)

    def error(self, message: str) -> None:
        typer.secho(message, fg=typer.colors.RED, err=True)


async def resolve_template(
    project_root: Path,
    template: str | None,
    template_path: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
    reporter=None,
) -> Resolved | Failure | None:
    """Resolve ``template`` and extract it into ``project_root``.

    Returns None when no template was given (the caller falls back to the
    default starter), a Failure describing why resolution stopped, or
    Resolved with the RepoInfo or example name that was extracted.
    ``reporter`` is any object with a writable ``text`` attribute.
    """
    if not template:
        return None
    settings = settings or Settings()
    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await _resolve(
                project_root, template, template_path, client, settings, reporter
            )
    return await _resolve(
        project_root, template, template_path, client, settings, reporter
    )


async def _resolve(
    project_root: Path,
    template: str,
    template_path: str | None,
    client: httpx.AsyncClient,
    settings: Settings,
    reporter,
) -> Resolved | Failure:
    parsed = parse_template_url(template)

    if isinstance(parsed, MalformedUrl):
        return Failure(
            FailureKind.MALFORMED_TEMPLATE,
            f'Invalid template identifier "{template}": {parsed.reason}',
        )

    if isinstance(parsed, NotAUrl):
        if not await has_example(client, template, settings):
            return Failure(
                FailureKind.NOT_FOUND,
                f'Could not locate an example named "{template}". '
                "Please check your spelling and try again.",
            )
        resolved = Resolved(source=template)
    else:
        if url_origin(parsed) != settings.web_origin:
            return Failure(
                FailureKind.UNSUPPORTED_HOST,
                f'Invalid URL: "{template}". Only GitHub repositories are supported. '
                "Please use a GitHub URL and try again.",
            )
        repo_info = await get_repo_info(client, parsed, template_path, settings)
        if repo_info is None:
            return Failure(
                FailureKind.INVALID_REFERENCE,
                f'Found invalid GitHub URL: "{template}". Please fix the URL and try again.',
            )
        if not await has_repo(client, repo_info, settings):
            return Failure(
                FailureKind.NOT_FOUND,
                f'Could not locate the repository for "{template}". '
                "Please check that the repository exists and try again.",
            )
        resolved = Resolved(source=repo_info)

    logger.debug("Resolved %r to %r", template, resolved.source)
    try:
        if resolved.is_example:
            _report(
                reporter,
                f"Downloading files for example {template}. This might take a moment.",
            )
            await download_and_extract_example(client, project_root, template, settings)
        else:
            _report(
                reporter,
                f"Downloading files from repo {template}. This might take a moment.",
            )
            await download_and_extract_repo(
                client, project_root, resolved.source, settings
            )
    except (httpx.HTTPError, httpx.InvalidURL, tarfile.TarError, OSError) as e:
        logger.debug("Download of %r failed", template, exc_info=True)
        return Failure(FailureKind.DOWNLOAD_FAILED, str(e) or type(e).__name__)

    ensure_gitignore(project_root)
    return resolved


def _report(reporter, text: str) -> None:
    if reporter is not None:
        reporter.text = text


async def resolve_template_arg(
    project_root: Path,
    reporter,
    template: str | None,
    template_path: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> bool:
    """CLI form of resolve_template: report failures and exit with code 1."""
    result = await resolve_template(
        project_root,
        template,
        template_path,
        client=client,
        settings=settings,
        reporter=reporter,
    )
    if result is None:
        return False
    if isinstance(result, Failure):
        reporter.error(result.message)
        raise typer.Exit(code=1)
    return True
