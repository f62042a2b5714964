"""Tests for summarize.pipeline — authorize, fetch, charge, summarize, assemble."""

import asyncio
import json

import pytest

from blingo.common.config import BlingoSettings
from blingo.common.database import DatabaseManager
from blingo.common.exceptions import (
    InvalidApiKeyError,
    InvalidRequestError,
    RateLimitExceededError,
    StoreNotConfiguredError,
)
from blingo.github.client import ReadmeResult, ReleaseInfo, RepoInfo
from blingo.keys.generator import generate_api_key
from blingo.keys.store import SqlKeyStore, UnconfiguredKeyStore
from blingo.ratelimit.authenticator import RateLimitedAuthenticator
from blingo.summarize.pipeline import (
    NO_README_MESSAGE,
    READY_DEV_MESSAGE,
    SummarizePipeline,
    readme_preview,
)
from blingo.summarizer.engine import MOCK_PREFIX, SummarizationEngine, SummaryResult
from blingo.summarizer.schemas import RepoSummary

API_BASE = "https://api.github.com"
RAW_BASE = "https://raw.githubusercontent.com"
LIMIT = 1000

RESPONSE_FIELDS = {
    "success", "githubUrl", "hasReadme", "readmePreview", "summary", "cool_facts",
    "stars", "forks", "openIssues", "language", "description", "homepage", "license",
    "latestVersion", "releaseName", "releaseDate", "releaseUrl",
    "usage", "limit", "remaining",
}


def make_settings(**overrides) -> BlingoSettings:
    defaults = {"secret_key": "test-secret", "db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return BlingoSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def store(db):
    return SqlKeyStore(db)


def make_pipeline(store, github, engine=None, dev_bypass=False):
    return SummarizePipeline(
        authenticator=RateLimitedAuthenticator(store, limit=LIMIT, dev_bypass=dev_bypass),
        store=store,
        github=github,
        engine=engine or SummarizationEngine(),
        limit=LIMIT,
    )


async def _key_with_usage(store, usage=0):
    user = await store.get_or_create_user("ada@example.com")
    snap = await store.create(user.id, "Primary", generate_api_key())
    if usage:
        async with store.db.get_session() as session:
            await store.service.set_usage(session, snap.id, usage)
    return snap


def _body(**fields) -> bytes:
    return json.dumps(fields).encode()


class FailingEngine:
    def __init__(self, message="LLM request timed out"):
        self.message = message

    async def summarize(self, readme):
        return SummaryResult.failure(self.message)


class TestReadmePreview:
    def test_short(self):
        assert readme_preview("abc") == "abc"

    def test_exact_limit(self):
        assert readme_preview("x" * 500) == "x" * 500

    def test_truncated(self):
        assert readme_preview("x" * 501) == "x" * 500 + "..."


class TestParseBody:
    def test_malformed_json(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            SummarizePipeline.parse_body(b"{not json")
        assert exc_info.value.message == "Invalid JSON body"

    def test_empty_body(self):
        with pytest.raises(InvalidRequestError):
            SummarizePipeline.parse_body(b"")

    def test_non_object(self):
        with pytest.raises(InvalidRequestError):
            SummarizePipeline.parse_body(b"[1, 2]")

    def test_missing_target(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            SummarizePipeline.parse_body(_body())
        assert exc_info.value.message == "Either githubUrl or readmeContent is required"

    def test_invalid_url_shape(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            SummarizePipeline.parse_body(_body(githubUrl="not-a-url"))
        assert "Invalid GitHub URL format" in exc_info.value.message

    def test_invalid_url_with_readme(self):
        with pytest.raises(InvalidRequestError):
            SummarizePipeline.parse_body(_body(githubUrl="not-a-url", readmeContent="# Foo"))

    def test_non_string_fields(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            SummarizePipeline.parse_body(_body(githubUrl=123))
        assert exc_info.value.message == "githubUrl and readmeContent must be strings"

    def test_valid(self):
        request = SummarizePipeline.parse_body(_body(githubUrl="https://github.com/o/r", extra=1))
        assert request.github_url == "https://github.com/o/r"
        assert request.readme_content is None


class TestAuthorization:
    async def test_missing_key(self, store, fake_github):
        with pytest.raises(InvalidApiKeyError) as exc_info:
            await make_pipeline(store, fake_github.client()).run(None, _body(githubUrl="https://github.com/o/r"))
        assert exc_info.value.message == "API key is required"

    async def test_unknown_key(self, store, fake_github):
        with pytest.raises(InvalidApiKeyError):
            await make_pipeline(store, fake_github.client()).run(
                generate_api_key(), _body(githubUrl="https://github.com/o/r")
            )
        assert fake_github.requests == []

    async def test_unconfigured_store(self, fake_github):
        pipeline = make_pipeline(UnconfiguredKeyStore(), fake_github.client())
        with pytest.raises(StoreNotConfiguredError):
            await pipeline.run(generate_api_key(), _body(githubUrl="https://github.com/o/r"))

    async def test_auth_checked_before_body(self, store, fake_github):
        with pytest.raises(InvalidApiKeyError):
            await make_pipeline(store, fake_github.client()).run("", b"{not json")


class TestScenarios:
    async def test_charged_request(self, store, fake_github):
        snap = await _key_with_usage(store, 5)
        fake_github.readme("o", "r", "# Foo\n- a\n- b\n- c").repo("o", "r").release("o", "r")

        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )

        assert payload["success"] is True
        assert payload["usage"] == 6
        assert payload["limit"] == 1000
        assert payload["remaining"] == 994
        assert payload["githubUrl"] == "https://github.com/o/r"
        assert payload["hasReadme"] is True
        assert payload["stars"] == 42
        assert payload["latestVersion"] == "v1.2.0"
        assert payload["mock"] is True
        assert "error" not in payload
        assert await store.get_usage(snap.id) == 6

    async def test_rate_limited_makes_no_calls(self, store, fake_github):
        snap = await _key_with_usage(store, LIMIT)
        with pytest.raises(RateLimitExceededError) as exc_info:
            await make_pipeline(store, fake_github.client()).run(
                snap.key, _body(githubUrl="https://github.com/o/r")
            )
        assert exc_info.value.usage == 1000
        assert exc_info.value.limit == 1000
        assert fake_github.requests == []
        assert await store.get_usage(snap.id) == LIMIT

    async def test_last_allowed_request(self, store, fake_github):
        snap = await _key_with_usage(store, LIMIT - 1)
        fake_github.readme("o", "r", "# Foo")
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )
        assert payload["usage"] == LIMIT
        assert payload["remaining"] == 0
        assert await store.get_usage(snap.id) == LIMIT

    async def test_invalid_url_before_network(self, store, fake_github):
        snap = await _key_with_usage(store)
        with pytest.raises(InvalidRequestError):
            await make_pipeline(store, fake_github.client()).run(snap.key, _body(githubUrl="not-a-url"))
        assert fake_github.requests == []
        assert await store.get_usage(snap.id) == 0

    async def test_literal_readme_mock(self, store, fake_github):
        snap = await _key_with_usage(store)
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(readmeContent="# Foo\n- a\n- b\n- c")
        )
        assert payload["success"] is True
        assert payload["mock"] is True
        assert len(payload["cool_facts"]) == 3
        assert all(f.startswith(MOCK_PREFIX) for f in payload["cool_facts"])
        assert "Foo" in payload["summary"]
        assert payload["githubUrl"] is None
        assert payload["stars"] is None
        assert fake_github.requests == []

    async def test_missing_readme_not_charged(self, store, fake_github):
        snap = await _key_with_usage(store, 5)
        fake_github.repo("o", "r").release("o", "r")

        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )

        assert payload["success"] is False
        assert payload["hasReadme"] is False
        assert payload["readmePreview"] is None
        assert payload["summary"] is None
        assert payload["cool_facts"] == []
        assert payload["stars"] == 42
        assert payload["language"] == "Python"
        assert payload["error"] == "README not found in main or master branch"
        assert payload["usage"] == 5
        assert payload["remaining"] == 995
        assert "mock" not in payload
        assert await store.get_usage(snap.id) == 5

    async def test_empty_readme_generic_message(self, store, fake_github):
        snap = await _key_with_usage(store)
        fake_github.readme("o", "r", "")
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )
        assert payload["hasReadme"] is False
        assert payload["error"] == NO_README_MESSAGE
        assert await store.get_usage(snap.id) == 0


class TestResponseShape:
    async def test_all_fields_on_success(self, store, fake_github):
        snap = await _key_with_usage(store)
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(readmeContent="# Foo")
        )
        assert RESPONSE_FIELDS <= set(payload)

    async def test_all_fields_on_missing_readme(self, store, fake_github):
        snap = await _key_with_usage(store)
        fake_github.fail(f"{RAW_BASE}/o/r/main/README.md")
        fake_github.fail(f"{API_BASE}/repos/o/r")
        fake_github.fail(f"{API_BASE}/repos/o/r/releases/latest")
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )
        assert RESPONSE_FIELDS <= set(payload)
        assert payload["error"].startswith("Network error fetching README")

    async def test_all_fields_on_summary_failure(self, store, fake_github):
        snap = await _key_with_usage(store)
        payload = await make_pipeline(store, fake_github.client(), engine=FailingEngine()).run(
            snap.key, _body(readmeContent="# Foo")
        )
        assert RESPONSE_FIELDS <= set(payload)
        assert payload["success"] is False
        assert payload["error"] == "LLM request timed out"
        assert "mock" not in payload


class TestPartialFailures:
    async def test_repo_info_failure_keeps_release_and_readme(self, store, fake_github):
        snap = await _key_with_usage(store)
        fake_github.readme("o", "r", "# Foo").release("o", "r")
        fake_github.fail(f"{API_BASE}/repos/o/r")

        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )

        assert payload["success"] is True
        assert payload["hasReadme"] is True
        assert payload["stars"] is None
        assert payload["license"] is None
        assert payload["latestVersion"] == "v1.2.0"
        assert payload["error"].startswith("Repository info unavailable: Network error")

    async def test_missing_release_is_not_an_error(self, store, fake_github):
        snap = await _key_with_usage(store)
        fake_github.readme("o", "r", "# Foo").repo("o", "r")
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )
        assert payload["latestVersion"] is None
        assert "error" not in payload

    async def test_literal_readme_with_url_fetches_metadata_only(self, store, fake_github):
        snap = await _key_with_usage(store)
        fake_github.repo("o", "r").release("o", "r")
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(githubUrl="https://github.com/o/r", readmeContent="# Literal")
        )
        assert payload["hasReadme"] is True
        assert payload["readmePreview"] == "# Literal"
        assert payload["stars"] == 42
        assert not any("README.md" in url for url in fake_github.requests)

    async def test_summary_failure_still_charged(self, store, fake_github):
        snap = await _key_with_usage(store, 5)
        payload = await make_pipeline(store, fake_github.client(), engine=FailingEngine()).run(
            snap.key, _body(readmeContent="# Foo")
        )
        assert payload["usage"] == 6
        assert await store.get_usage(snap.id) == 6


class TestMockFlag:
    async def test_real_completion_has_no_mock_key(self, store, fake_github):
        snap = await _key_with_usage(store)

        class StaticCompletion:
            async def complete(self, system_prompt, user_prompt, output_model, json_schema, schema_name="response"):
                return RepoSummary(summary="A real summary.", cool_facts=["a", "b", "c"])

        payload = await make_pipeline(
            store, fake_github.client(), engine=SummarizationEngine(StaticCompletion())
        ).run(snap.key, _body(readmeContent="# Foo\n- x\n- y\n- z"))

        assert payload["success"] is True
        assert payload["summary"] == "A real summary."
        assert payload["cool_facts"] == ["a", "b", "c"]
        assert "mock" not in payload
        assert "error" not in payload

    async def test_offline_summary_has_mock_key(self, store, fake_github):
        snap = await _key_with_usage(store)
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(readmeContent="# Foo")
        )
        assert payload["mock"] is True


class TestQuotaRace:
    async def test_concurrent_requests_at_limit_all_charged(self, store):
        snap = await _key_with_usage(store, LIMIT - 1)
        entered = []
        all_authorized = asyncio.Event()

        class GatedGitHub:
            async def fetch_readme(self, url):
                entered.append(url)
                if len(entered) == 3:
                    all_authorized.set()
                await asyncio.wait_for(all_authorized.wait(), timeout=2)
                return ReadmeResult(content="# Foo")

            async def fetch_repo_info(self, owner, repo):
                return RepoInfo()

            async def fetch_latest_release(self, owner, repo):
                return ReleaseInfo()

        pipeline = make_pipeline(store, GatedGitHub())
        body = _body(githubUrl="https://github.com/o/r")

        # All three pass authorization before any of them is charged.
        payloads = await asyncio.gather(*(pipeline.run(snap.key, body) for _ in range(3)))

        assert all(p["success"] for p in payloads)
        assert await store.get_usage(snap.id) == LIMIT + 2
        with pytest.raises(RateLimitExceededError):
            await pipeline.run(snap.key, _body(readmeContent="# Foo"))


class TestOrdering:
    async def test_charged_before_summarize(self, store, fake_github):
        snap = await _key_with_usage(store, 5)
        seen = {}

        class RecordingEngine:
            async def summarize(self, readme):
                seen["usage"] = await store.get_usage(snap.id)
                return SummaryResult.ok("S.", ["a", "b", "c"])

        await make_pipeline(store, fake_github.client(), engine=RecordingEngine()).run(
            snap.key, _body(readmeContent="# Foo")
        )
        assert seen["usage"] == 6

    async def test_failed_charge_does_not_block(self, store, fake_github, monkeypatch):
        snap = await _key_with_usage(store, 5)

        async def no_charge(key_id):
            return False

        monkeypatch.setattr(store, "increment_usage", no_charge)
        payload = await make_pipeline(store, fake_github.client()).run(
            snap.key, _body(readmeContent="# Foo")
        )
        assert payload["success"] is True
        assert payload["usage"] == 5
        assert payload["remaining"] == 995

    async def test_fetches_run_concurrently(self, store):
        snap = await _key_with_usage(store)
        started = []
        all_started = asyncio.Event()

        class BarrierGitHub:
            async def _enter(self, name):
                started.append(name)
                if len(started) == 3:
                    all_started.set()
                # Deadlocks (and times out) if the fetches are serialized.
                await asyncio.wait_for(all_started.wait(), timeout=2)

            async def fetch_readme(self, url):
                await self._enter("readme")
                return ReadmeResult(content="# Foo")

            async def fetch_repo_info(self, owner, repo):
                await self._enter("repo_info")
                return RepoInfo(stars=1)

            async def fetch_latest_release(self, owner, repo):
                await self._enter("release_info")
                return ReleaseInfo(latest_version="v1")

        payload = await make_pipeline(store, BarrierGitHub()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )
        assert sorted(started) == ["readme", "release_info", "repo_info"]
        assert payload["stars"] == 1
        assert payload["latestVersion"] == "v1"

    async def test_fetch_exception_does_not_cancel_siblings(self, store):
        snap = await _key_with_usage(store)

        class FlakyGitHub:
            async def fetch_readme(self, url):
                return ReadmeResult(content="# Foo")

            async def fetch_repo_info(self, owner, repo):
                raise RuntimeError("socket closed")

            async def fetch_latest_release(self, owner, repo):
                await asyncio.sleep(0.01)
                return ReleaseInfo(latest_version="v1")

        payload = await make_pipeline(store, FlakyGitHub()).run(
            snap.key, _body(githubUrl="https://github.com/o/r")
        )
        assert payload["latestVersion"] == "v1"
        assert payload["stars"] is None
        assert "Repository info unavailable: Network error: socket closed" in payload["error"]


class TestDevBypass:
    async def test_bypass_not_charged(self, store, fake_github):
        key = generate_api_key()
        payload = await make_pipeline(store, fake_github.client(), dev_bypass=True).run(
            key, _body(readmeContent="# Foo")
        )
        assert payload["usage"] == 0
        assert payload["remaining"] == LIMIT

    async def test_bypass_status(self, store, fake_github):
        status = await make_pipeline(store, fake_github.client(), dev_bypass=True).status(generate_api_key())
        assert status["message"] == READY_DEV_MESSAGE
        assert status["usage"] == 0


class TestStatus:
    async def test_status(self, store, fake_github):
        snap = await _key_with_usage(store, 10)
        status = await make_pipeline(store, fake_github.client()).status(snap.key)
        assert status["success"] is True
        assert status["usage"] == 10
        assert status["remaining"] == 990
        assert await store.get_usage(snap.id) == 10

    async def test_status_rate_limited(self, store, fake_github):
        snap = await _key_with_usage(store, LIMIT)
        with pytest.raises(RateLimitExceededError):
            await make_pipeline(store, fake_github.client()).status(snap.key)
