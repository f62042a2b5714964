"""Summarize pipeline — authorize, parse, fetch, charge, summarize, assemble.

Terminal failures (bad key, quota, unconfigured store, bad input) raise a
``BlingoError`` for the router to map onto an HTTP status. Everything after
input validation resolves to one ``SummarizeResponse`` payload.
"""

import asyncio
import json
import logging
from typing import Any

from pydantic import ValidationError

from blingo.common.exceptions import (
    BlingoError,
    InvalidApiKeyError,
    InvalidRequestError,
    RateLimitExceededError,
    StoreNotConfiguredError,
)
from blingo.github.client import (
    GitHubClient,
    ReadmeResult,
    ReleaseInfo,
    RepoInfo,
    is_github_url,
    parse_repo_url,
)
from blingo.keys.store import ApiKeySnapshot, KeyStore
from blingo.ratelimit.authenticator import (
    AuthorizationOutcome,
    AuthStatus,
    RateLimitedAuthenticator,
)
from blingo.summarize.schemas import StatusResponse, SummarizeRequest, SummarizeResponse
from blingo.summarizer.engine import SummarizationEngine, SummaryResult

logger = logging.getLogger(__name__)

NO_README_MESSAGE = "No README found in this repository."
READY_MESSAGE = "GitHub Summarizer API is ready. Use POST with a githubUrl in the body."
READY_DEV_MESSAGE = "GitHub Summarizer API is ready (DEV MODE)."


def readme_preview(content: str, limit: int = 500) -> str:
    return content[:limit] + ("..." if len(content) > limit else "")


class SummarizePipeline:
    """Runs one summarize request end to end."""

    def __init__(
        self,
        authenticator: RateLimitedAuthenticator,
        store: KeyStore,
        github: GitHubClient,
        engine: SummarizationEngine,
        limit: int,
        preview_chars: int = 500,
    ):
        self.authenticator = authenticator
        self.store = store
        self.github = github
        self.engine = engine
        self.limit = limit
        self.preview_chars = preview_chars

    # ── Authorization ──

    async def authorize(self, api_key: str | None) -> AuthorizationOutcome:
        """Authorize or raise the error matching the outcome."""
        outcome = await self.authenticator.authorize(api_key or "")
        if outcome.status is AuthStatus.RATE_LIMITED:
            raise RateLimitExceededError(
                outcome.reason or "Rate limit exceeded. Please upgrade your plan or contact support.",
                usage=outcome.usage,
                limit=self.limit,
            )
        if outcome.status is AuthStatus.UNCONFIGURED:
            raise StoreNotConfiguredError(outcome.reason or "Database not configured")
        if not outcome.allowed:
            raise InvalidApiKeyError(outcome.reason or "Unauthorized")
        return outcome

    async def status(self, api_key: str | None) -> dict[str, Any]:
        outcome = await self.authorize(api_key)
        bypass = outcome.status is AuthStatus.BYPASS
        usage = 0 if bypass else outcome.usage
        return StatusResponse(
            message=READY_DEV_MESSAGE if bypass else READY_MESSAGE,
            usage=usage,
            limit=self.limit,
            remaining=self.limit - usage,
        ).model_dump()

    # ── Input ──

    @staticmethod
    def parse_body(raw_body: bytes | str) -> SummarizeRequest:
        try:
            data = json.loads(raw_body or b"")
        except (ValueError, UnicodeDecodeError) as exc:
            raise InvalidRequestError("Invalid JSON body") from exc
        if not isinstance(data, dict):
            raise InvalidRequestError("Invalid JSON body")

        try:
            request = SummarizeRequest.model_validate(data)
        except ValidationError as exc:
            raise InvalidRequestError(
                "githubUrl and readmeContent must be strings"
            ) from exc

        if not request.github_url and not request.readme_content:
            raise InvalidRequestError("Either githubUrl or readmeContent is required")
        if request.github_url and not is_github_url(request.github_url):
            raise InvalidRequestError(
                "Invalid GitHub URL format. Expected: https://github.com/owner/repo"
            )
        return request

    # ── Repository data ──

    async def acquire(
        self, request: SummarizeRequest
    ) -> tuple[ReadmeResult, RepoInfo, ReleaseInfo]:
        """Fetch whatever the request needs, all members of the fan-out at once."""
        github_url = request.github_url
        ref = parse_repo_url(github_url) if github_url else None

        jobs: dict[str, Any] = {}
        if not request.readme_content:
            jobs["readme"] = self.github.fetch_readme(github_url)
        if ref is not None:
            jobs["repo_info"] = self.github.fetch_repo_info(ref.owner, ref.repo)
            jobs["release_info"] = self.github.fetch_latest_release(ref.owner, ref.repo)

        results = await asyncio.gather(*jobs.values(), return_exceptions=True)
        settled = dict(zip(jobs, results))

        for name, result in settled.items():
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                logger.error("Unexpected error during %s fetch for %s: %s", name, github_url, result)

        if request.readme_content:
            readme = ReadmeResult(content=request.readme_content)
        else:
            readme = settled["readme"]
            if isinstance(readme, Exception):
                readme = ReadmeResult(error=f"Network error fetching README: {readme}")

        if ref is None:
            url_error = "Invalid URL" if github_url else None
            return readme, RepoInfo.empty(url_error), ReleaseInfo.empty(url_error)

        repo_info = settled["repo_info"]
        if isinstance(repo_info, Exception):
            repo_info = RepoInfo.empty(f"Network error: {repo_info}")
        release_info = settled["release_info"]
        if isinstance(release_info, Exception):
            release_info = ReleaseInfo.empty(f"Network error: {release_info}")
        return readme, repo_info, release_info

    # ── Usage ──

    async def charge(self, key: ApiKeySnapshot) -> bool:
        """Count one request against ``key``. A failed charge never aborts the request."""
        try:
            charged = await self.store.increment_usage(key.id)
        except BlingoError as exc:
            logger.error("Failed to increment usage for key %s: %s", key.id, exc.message)
            return False
        if not charged:
            logger.error("Usage was not incremented for key %s", key.id)
        return charged

    # ── Pipeline ──

    async def run(self, api_key: str | None, raw_body: bytes | str) -> dict[str, Any]:
        """Run one request and return the response payload.

        The quota is read at authorization and charged only after the
        GitHub fetches, so concurrent requests on a key one below its limit
        can all pass and push usage past the limit. Known limitation; the
        increment itself is atomic, so no charge is lost.
        """
        outcome = await self.authorize(api_key)
        billable_key = outcome.key if outcome.status is AuthStatus.VALID else None
        usage = outcome.usage if billable_key else 0

        request = self.parse_body(raw_body)
        readme, repo_info, release_info = await self.acquire(request)

        if not readme.content:
            return self._assemble(
                request,
                readme=None,
                repo_info=repo_info,
                release_info=release_info,
                summary=None,
                usage=usage,
                error=readme.error or NO_README_MESSAGE,
            )

        # Charged before the summarization call so a failing or hanging
        # completion still consumes quota.
        if billable_key is not None and await self.charge(billable_key):
            usage += 1

        summary = await self.engine.summarize(readme.content)

        return self._assemble(
            request,
            readme=readme.content,
            repo_info=repo_info,
            release_info=release_info,
            summary=summary,
            usage=usage,
            error=summary.error,
        )

    def _assemble(
        self,
        request: SummarizeRequest,
        readme: str | None,
        repo_info: RepoInfo,
        release_info: ReleaseInfo,
        summary: SummaryResult | None,
        usage: int,
        error: str | None,
    ) -> dict[str, Any]:
        messages = [error] if error else []
        if readme is not None:
            if repo_info.error:
                messages.append(f"Repository info unavailable: {repo_info.error}")
            if release_info.error and not release_info.not_found:
                messages.append(f"Release info unavailable: {release_info.error}")

        response = SummarizeResponse(
            success=bool(summary and summary.success),
            github_url=request.github_url or None,
            has_readme=readme is not None,
            readme_preview=readme_preview(readme, self.preview_chars) if readme is not None else None,
            summary=summary.summary if summary else None,
            cool_facts=summary.cool_facts if summary else [],
            stars=repo_info.stars,
            forks=repo_info.forks,
            open_issues=repo_info.open_issues,
            language=repo_info.language,
            description=repo_info.description,
            homepage=repo_info.homepage,
            license=repo_info.license,
            latest_version=release_info.latest_version,
            release_name=release_info.release_name,
            release_date=release_info.release_date,
            release_url=release_info.release_url,
            usage=usage,
            limit=self.limit,
            remaining=self.limit - usage,
            mock=True if summary and summary.mock else None,
            error="; ".join(messages) or None,
        )
        return response.to_payload()
