"""Shared test fixtures for Blingo."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from blingo.github.client import GitHubClient

SECRET_KEY = "test-secret-key-for-unit-tests"
API_BASE = "https://api.github.com"
RAW_BASE = "https://raw.githubusercontent.com"


class FakeGitHub:
    """Canned GitHub responses served through ``httpx.MockTransport``.

    Unregistered URLs answer 404. A registered ``Exception`` is raised as a
    transport failure.
    """

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.requests: list[str] = []

    def add(self, url: str, status: int = 200, json=None, text: str | None = None):
        if json is not None:
            self.routes[url] = (status, {"json": json})
        else:
            self.routes[url] = (status, {"text": text or ""})
        return self

    def fail(self, url: str, message: str = "connection refused"):
        self.routes[url] = httpx.ConnectError(message)
        return self

    def readme(self, owner: str, repo: str, content: str, branch: str = "main"):
        return self.add(f"{RAW_BASE}/{owner}/{repo}/{branch}/README.md", text=content)

    def repo(self, owner: str, repo: str, status: int = 200, **fields):
        body = {
            "stargazers_count": 42,
            "forks_count": 7,
            "open_issues_count": 3,
            "language": "Python",
            "description": "A test repository",
            "homepage": "",
            "license": {"name": "MIT License"},
        }
        body.update(fields)
        return self.add(f"{API_BASE}/repos/{owner}/{repo}", status=status, json=body)

    def release(self, owner: str, repo: str, tag: str = "v1.2.0"):
        return self.add(
            f"{API_BASE}/repos/{owner}/{repo}/releases/latest",
            json={
                "tag_name": tag,
                "name": f"Release {tag}",
                "published_at": "2024-05-01T12:00:00Z",
                "html_url": f"https://github.com/{owner}/{repo}/releases/tag/{tag}",
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="Not Found")
        if isinstance(route, Exception):
            raise route
        status, kwargs = route
        return httpx.Response(status, **kwargs)

    def client(self) -> GitHubClient:
        transport = httpx.MockTransport(self.handler)
        return GitHubClient(httpx.AsyncClient(transport=transport))


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def app(monkeypatch):
    """Create a test app with in-memory DB and no completion credential."""
    monkeypatch.setenv("BLINGO_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("BLINGO_SECRET_KEY", SECRET_KEY)
    monkeypatch.delenv("BLINGO_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("BLINGO_DEV_BYPASS_AUTH", raising=False)
    monkeypatch.delenv("BLINGO_RATE_LIMIT", raising=False)

    # Clear caches and singletons so new env vars take effect
    from blingo.common.config import get_settings
    get_settings.cache_clear()

    from blingo.deps import reset_singletons
    reset_singletons()

    from blingo.app import create_app
    yield create_app()

    get_settings.cache_clear()
    reset_singletons()


@pytest.fixture
async def client(app, fake_github, monkeypatch):
    # Manually init DB since ASGITransport doesn't run lifespan
    from blingo import deps
    db = deps.get_db()
    await db.init()
    await db.create_all()
    monkeypatch.setattr(deps, "_github", fake_github.client())

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await deps.close_clients()
    await db.close()


@pytest.fixture
def session_headers(app):
    from blingo.common.security import create_session_token
    return {"X-Session-Token": create_session_token("ada@example.com", name="Ada")}
