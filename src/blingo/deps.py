"""Dependency injection singletons for Blingo."""

from blingo.common.config import get_settings
from blingo.common.database import DatabaseManager
from blingo.github.client import GitHubClient
from blingo.keys.store import KeyStore, build_key_store
from blingo.ratelimit.authenticator import RateLimitedAuthenticator
from blingo.summarize.pipeline import SummarizePipeline
from blingo.summarizer.completion import OpenAICompletionClient
from blingo.summarizer.engine import SummarizationEngine

_db: DatabaseManager | None = None
_store: KeyStore | None = None
_authenticator: RateLimitedAuthenticator | None = None
_github: GitHubClient | None = None
_summarizer: SummarizationEngine | None = None
_pipeline: SummarizePipeline | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_key_store() -> KeyStore:
    global _store
    if _store is None:
        settings = get_settings()
        _store = build_key_store(settings, get_db() if settings.store_configured else None)
    return _store


def get_authenticator() -> RateLimitedAuthenticator:
    global _authenticator
    if _authenticator is None:
        settings = get_settings()
        _authenticator = RateLimitedAuthenticator(
            get_key_store(),
            limit=settings.rate_limit,
            dev_bypass=settings.dev_bypass_auth,
            key_prefix=settings.key_prefix,
        )
    return _authenticator


def get_github_client() -> GitHubClient:
    global _github
    if _github is None:
        settings = get_settings()
        _github = GitHubClient(
            api_url=settings.github_api_url,
            raw_url=settings.github_raw_url,
            token=settings.github_token,
            user_agent=settings.github_user_agent,
            timeout=settings.github_timeout,
        )
    return _github


def get_summarizer() -> SummarizationEngine:
    global _summarizer
    if _summarizer is None:
        settings = get_settings()
        completion = None
        if settings.completion_configured:
            completion = OpenAICompletionClient(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                temperature=settings.openai_temperature,
                timeout=settings.openai_timeout,
            )
        _summarizer = SummarizationEngine(completion)
    return _summarizer


def get_summarize_pipeline() -> SummarizePipeline:
    global _pipeline
    if _pipeline is None:
        settings = get_settings()
        _pipeline = SummarizePipeline(
            authenticator=get_authenticator(),
            store=get_key_store(),
            github=get_github_client(),
            engine=get_summarizer(),
            limit=settings.rate_limit,
            preview_chars=settings.readme_preview_chars,
        )
    return _pipeline


async def close_clients() -> None:
    """Release outbound HTTP clients held by the singletons."""
    if _github is not None:
        await _github.aclose()
    if _summarizer is not None and _summarizer.completion is not None:
        await _summarizer.completion.close()


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _store, _authenticator, _github, _summarizer, _pipeline
    _db = None
    _store = None
    _authenticator = None
    _github = None
    _summarizer = None
    _pipeline = None
