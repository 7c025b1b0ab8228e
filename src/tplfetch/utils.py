import logging
import os
import re
import shutil
import tomllib
from dataclasses import fields
from pathlib import Path
from urllib.parse import SplitResult, quote, urlsplit

import httpx
import typer

from .models import Example, MalformedUrl, NotAUrl, RepoInfo, Settings

logger = logging.getLogger(__name__)

DEFAULT_GITIGNORE = Path(__file__).parent / "template" / "gitignore"

_SETTING_KEYS = tuple(f.name for f in fields(Settings))
_DEFAULT_PORTS = {"http": 80, "https": 443}


def read_toml(path: Path) -> dict:
    with path.open("rb") as f:
        return tomllib.load(f)


def linux_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
    return Path(base) / "tplfetch"


def load_settings(config_file: Path | None = None) -> Settings:
    """Build Settings from defaults, the TOML config file and TPLFETCH_* env vars.

    ``config_file`` replaces the default ``$XDG_CONFIG_HOME/tplfetch/config.toml``
    and must exist when given. Environment variables win over the file.
    """
    if config_file is not None and not config_file.is_file():
        raise typer.BadParameter(f"Config file not found: {config_file}")
    path = config_file or linux_config_dir() / "config.toml"

    values: dict[str, str] = {}
    if path.is_file():
        table = read_toml(path).get("tplfetch", {}) or {}
        unknown = sorted(set(table) - set(_SETTING_KEYS))
        if unknown:
            raise typer.BadParameter(
                f"Unknown setting(s) in {path}: {', '.join(unknown)}"
            )
        values.update({k: str(v) for k, v in table.items()})

    for key in _SETTING_KEYS:
        env_value = os.environ.get(f"TPLFETCH_{key.upper()}")
        if env_value:
            values[key] = env_value

    # Endpoints are joined with "/..." suffixes
    for key in ("web_origin", "api_url", "codeload_url"):
        if key in values:
            values[key] = values[key].rstrip("/")
    return Settings(**values)


def parse_template_url(template: str) -> SplitResult | NotAUrl | MalformedUrl:
    """Classify a template identifier as a URL, an example name or garbage.

    Invalid URL syntax means the identifier names an example. Anything else
    that breaks parsing (a non-string identifier) is malformed.
    """
    try:
        url = urlsplit(template)
        if url.scheme in _DEFAULT_PORTS and not url.netloc:
            # "https:github.com/x" and "https:/github.com/x" name a host
            rest = template[len(url.scheme) + 1 :].lstrip("/")
            url = urlsplit(f"{url.scheme}://{rest}")
        # Port validation is lazy in urllib
        url.port
    except ValueError:
        return NotAUrl(template=template)
    except (TypeError, AttributeError) as e:
        return MalformedUrl(template=template, reason=str(e))
    if not url.scheme:
        return NotAUrl(template=template)
    return url


def url_origin(url: SplitResult) -> str:
    if not url.hostname:
        return "null"
    scheme = url.scheme.lower()
    origin = f"{scheme}://{url.hostname}"
    if url.port is not None and url.port != _DEFAULT_PORTS.get(scheme):
        origin += f":{url.port}"
    return origin


async def is_url_ok(client: httpx.AsyncClient, url: str) -> bool:
    try:
        response = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug("GET %s failed: %s", url, e)
        return False
    logger.debug("GET %s -> %s", url, response.status_code)
    return response.status_code == 200


async def get_repo_info(
    client: httpx.AsyncClient,
    url: SplitResult,
    example_path: str | None = None,
    settings: Settings = Settings(),
) -> RepoInfo | None:
    # ["", owner, name, "tree", branch, *rest]
    segs = url.path.split("/")
    segs += [None] * (5 - len(segs))
    _, owner, name, marker, branch_seg = segs[:5]
    rest = segs[5:]
    file_path = example_path.removeprefix("/") if example_path else "/".join(rest)

    # The whole repository is the example, e.g. https://github.com/user/my-example
    if marker is None:
        if not owner or not name:
            return None
        info_url = f"{settings.api_url}/repos/{owner}/{name}"
        try:
            response = await client.get(info_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("GET %s failed: %s", info_url, e)
            return None
        if response.status_code != 200:
            logger.debug("GET %s -> %s", info_url, response.status_code)
            return None
        try:
            default_branch = response.json().get("default_branch")
        except ValueError:
            return None
        if not default_branch:
            return None
        return RepoInfo(
            owner=owner, name=name, branch=default_branch, file_path=file_path
        )

    # An explicit example path means the branch may itself contain slashes:
    # everything between "tree/" and the example path is the branch.
    # Without one, a slashed branch is split into branch and subpath.
    if example_path and branch_seg is not None:
        joined = f"{branch_seg}/{'/'.join(rest)}"
        branch = re.sub(f"/{re.escape(file_path)}|/$", "", joined, count=1)
    else:
        branch = branch_seg

    if owner and name and branch and marker == "tree":
        return RepoInfo(owner=owner, name=name, branch=branch, file_path=file_path)
    return None


def repo_package_url(info: RepoInfo, settings: Settings = Settings()) -> str:
    contents_url = f"{settings.api_url}/repos/{info.owner}/{info.name}/contents"
    package_path = f"/{info.file_path}/package.json" if info.file_path else "/package.json"
    return f"{contents_url}{package_path}?ref={info.branch}"


def example_package_url(name: str, settings: Settings = Settings()) -> str:
    return (
        f"{settings.api_url}/repos/{settings.examples_repo}/contents/"
        f"{quote(name, safe='')}/package.json"
    )


async def has_repo(
    client: httpx.AsyncClient, info: RepoInfo, settings: Settings = Settings()
) -> bool:
    return await is_url_ok(client, repo_package_url(info, settings))


async def has_example(
    client: httpx.AsyncClient, name: str, settings: Settings = Settings()
) -> bool:
    return await is_url_ok(client, example_package_url(name, settings))


async def list_examples(
    client: httpx.AsyncClient, settings: Settings = Settings()
) -> list[Example]:
    """Return the selectable examples; raises on HTTP failure."""
    url = f"{settings.api_url}/repos/{settings.examples_repo}/contents"
    response = await client.get(url)
    response.raise_for_status()
    entries = response.json()
    if not isinstance(entries, list):
        raise ValueError(f"Unexpected response from {url}: expected a list")
    return [
        Example(name=entry["name"], type=entry["type"])
        for entry in entries
        if isinstance(entry, dict)
        and entry.get("type") == "dir"
        and isinstance(entry.get("name"), str)
        and entry["name"]
        and not entry["name"].startswith(".")
    ]


def ensure_gitignore(project_root: Path) -> None:
    # Copy the default .gitignore if the template did not provide one
    ignore_path = project_root / ".gitignore"
    if not ignore_path.exists():
        shutil.copyfile(DEFAULT_GITIGNORE, ignore_path)
