"""GitHub data client — README, repository metadata and latest release.

Every fetch resolves to a value carrying its own ``error`` string; nothing
here raises on HTTP or transport failures.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/[^/]+/[^/]+")
_REPO_URL_PATTERN = re.compile(r"^https://github\.com/([^/]+)/([^/]+)(/.*)?$")

README_BRANCHES = ("main", "master")

NO_TAGS = "No tags found"
NO_RELEASES_OR_TAGS = "No releases or tags found"


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str


@dataclass
class ReadmeResult:
    content: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RepoInfo:
    stars: Optional[int] = None
    forks: Optional[int] = None
    open_issues: Optional[int] = None
    language: Optional[str] = None
    description: Optional[str] = None
    homepage: Optional[str] = None
    license: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def empty(cls, error: str | None = None) -> "RepoInfo":
        return cls(error=error)


@dataclass
class ReleaseInfo:
    latest_version: Optional[str] = None
    release_name: Optional[str] = None
    release_date: Optional[str] = None
    release_url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def empty(cls, error: str | None = None) -> "ReleaseInfo":
        return cls(error=error)

    @property
    def not_found(self) -> bool:
        """True when the repository simply has no releases or tags."""
        return self.error in (NO_TAGS, NO_RELEASES_OR_TAGS)


def is_github_url(url: str) -> bool:
    """Shape check: ``https://github.com/<owner>/<repo>`` with anything after."""
    if not url or not isinstance(url, str):
        return False
    return GITHUB_URL_PATTERN.match(url) is not None


def parse_repo_url(url: str) -> RepoRef | None:
    match = _REPO_URL_PATTERN.match(url or "")
    if not match:
        return None
    return RepoRef(owner=match.group(1), repo=match.group(2))


class GitHubClient:
    """Reads public repository data from the REST API and raw-content host."""

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        api_url: str = "https://api.github.com",
        raw_url: str = "https://raw.githubusercontent.com",
        token: str | None = None,
        user_agent: str = "Blingo-GitHub-Summarizer",
        timeout: float = 10.0,
    ):
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self.api_url = api_url.rstrip("/")
        self.raw_url = raw_url.rstrip("/")
        self.user_agent = user_agent
        self._api_headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": user_agent,
        }
        if token:
            self._api_headers["Authorization"] = f"Bearer {token}"

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _api_get(self, path: str) -> httpx.Response:
        url = f"{self.api_url}{path}"
        logger.debug("GitHub API GET %s", url)
        return await self._http.get(url, headers=self._api_headers)

    # ── README ──

    async def fetch_readme(self, github_url: str) -> ReadmeResult:
        """Fetch README.md from ``main``, then ``master``; first 2xx wins."""
        ref = parse_repo_url(github_url)
        if ref is None:
            return ReadmeResult(error="Invalid GitHub URL format")

        try:
            for branch in README_BRANCHES:
                readme_url = f"{self.raw_url}/{ref.owner}/{ref.repo}/{branch}/README.md"
                logger.debug("Fetching README from %s", readme_url)
                resp = await self._http.get(
                    readme_url, headers={"User-Agent": self.user_agent}
                )
                if resp.is_success:
                    return ReadmeResult(content=resp.text)
                logger.debug("README %s returned HTTP %s", readme_url, resp.status_code)
        except httpx.HTTPError as exc:
            logger.warning("Network error fetching README for %s: %s", github_url, exc)
            return ReadmeResult(error=f"Network error fetching README: {exc}")

        return ReadmeResult(error="README not found in main or master branch")

    # ── Repository metadata ──

    async def fetch_repo_info(self, owner: str, repo: str) -> RepoInfo:
        try:
            resp = await self._api_get(f"/repos/{owner}/{repo}")
            if not resp.is_success:
                logger.warning("GitHub API error %s for %s/%s", resp.status_code, owner, repo)
                return RepoInfo.empty(f"GitHub API error: {resp.status_code}")
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Network error fetching repo info for %s/%s: %s", owner, repo, exc)
            return RepoInfo.empty(f"Network error: {exc}")
        except ValueError:
            return RepoInfo.empty("Invalid response from GitHub API")
        if not isinstance(data, dict):
            return RepoInfo.empty("Invalid response from GitHub API")

        license_data = data.get("license") or {}
        return RepoInfo(
            stars=data.get("stargazers_count"),
            forks=data.get("forks_count"),
            open_issues=data.get("open_issues_count"),
            language=data.get("language"),
            description=data.get("description"),
            homepage=data.get("homepage") or None,
            license=license_data.get("name") if isinstance(license_data, dict) else None,
        )

    # ── Releases ──

    async def fetch_latest_release(self, owner: str, repo: str) -> ReleaseInfo:
        """Latest release, falling back to the newest tag when there is none."""
        try:
            resp = await self._api_get(f"/repos/{owner}/{repo}/releases/latest")
            if resp.status_code == 404:
                return await self.fetch_latest_tag(owner, repo)
            if not resp.is_success:
                logger.warning("GitHub API error %s for %s/%s release", resp.status_code, owner, repo)
                return ReleaseInfo.empty(f"GitHub API error: {resp.status_code}")
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Network error fetching release for %s/%s: %s", owner, repo, exc)
            return ReleaseInfo.empty(f"Network error: {exc}")
        except ValueError:
            return ReleaseInfo.empty("Invalid response from GitHub API")
        if not isinstance(data, dict):
            return ReleaseInfo.empty("Invalid response from GitHub API")

        return ReleaseInfo(
            latest_version=data.get("tag_name"),
            release_name=data.get("name"),
            release_date=data.get("published_at"),
            release_url=data.get("html_url"),
        )

    async def fetch_latest_tag(self, owner: str, repo: str) -> ReleaseInfo:
        # Takes the first entry of /tags; GitHub does not document that order
        # as newest-first.
        try:
            resp = await self._api_get(f"/repos/{owner}/{repo}/tags")
            if not resp.is_success:
                return ReleaseInfo.empty(NO_RELEASES_OR_TAGS)
            tags = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Network error fetching tags for %s/%s: %s", owner, repo, exc)
            return ReleaseInfo.empty(f"Network error: {exc}")
        except ValueError:
            return ReleaseInfo.empty("Invalid response from GitHub API")

        if not isinstance(tags, list) or not tags:
            return ReleaseInfo.empty(NO_TAGS)
        if not isinstance(tags[0], dict):
            return ReleaseInfo.empty("Invalid response from GitHub API")

        name = tags[0].get("name")
        return ReleaseInfo(
            latest_version=name,
            release_name=f"Tag: {name}",
            release_date=None,
            release_url=f"https://github.com/{owner}/{repo}/releases/tag/{name}",
        )
