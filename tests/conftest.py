"""Shared test fixtures."""

import io
import tarfile

import httpx
import pytest


def make_tarball(files: dict[str, bytes | None]) -> bytes:
    """Build a gzip tarball in memory; a ``None`` value adds a directory."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            if data is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeGitHub:
    """Routes exact URLs to canned responses and records every request."""

    def __init__(self) -> None:
        self.routes: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, status: int = 200, **kwargs) -> None:
        self.routes[url] = {"status_code": status, **kwargs}

    def fail(self, url: str) -> None:
        self.routes[url] = {"error": True}

    @property
    def requested_urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if route.get("error"):
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(**route)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler), follow_redirects=True
        )


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's config file and TPLFETCH_* variables out of tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    for key in (
        "WEB_ORIGIN",
        "API_URL",
        "CODELOAD_URL",
        "EXAMPLES_REPO",
        "EXAMPLES_BRANCH",
    ):
        monkeypatch.delenv(f"TPLFETCH_{key}", raising=False)
