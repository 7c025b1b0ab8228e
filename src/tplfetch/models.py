from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class RepoInfo:
    owner: str
    name: str
    branch: str
    file_path: str


@dataclass(frozen=True)
class Example:
    name: str
    type: str


@dataclass(frozen=True)
class Settings:
    web_origin: str = "https://github.com"
    api_url: str = "https://api.github.com"
    codeload_url: str = "https://codeload.github.com"
    examples_repo: str = "expo/examples"
    examples_branch: str = "master"

    @property
    def examples_repo_name(self) -> str:
        return self.examples_repo.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class NotAUrl:
    """The template identifier has no URL scheme, so it names an example."""

    template: str


@dataclass(frozen=True)
class MalformedUrl:
    """The template identifier looks like a URL but cannot be parsed."""

    template: str
    reason: str


class FailureKind(str, Enum):
    MALFORMED_TEMPLATE = "malformed-template"
    UNSUPPORTED_HOST = "unsupported-host"
    INVALID_REFERENCE = "invalid-reference"
    NOT_FOUND = "not-found"
    DOWNLOAD_FAILED = "download-failed"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str


@dataclass(frozen=True)
class Resolved:
    # RepoInfo for a repository URL, the bare name for an example
    source: RepoInfo | str

    @property
    def is_example(self) -> bool:
        return isinstance(self.source, str)
