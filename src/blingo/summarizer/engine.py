"""README summarization: structured LLM call, or an offline heuristic when no key is configured."""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from blingo.common.exceptions import BlingoError
from blingo.summarizer.schemas import REPO_SUMMARY_JSON_SCHEMA, RepoSummary

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant that analyzes GitHub repositories. "
    "Analyze the README and extract key information."
)

USER_PROMPT_TEMPLATE = """Analyze this GitHub repository based on its README file and provide:
1. A concise summary (2-3 sentences)
2. At least 3 cool or interesting facts/features

README Content:
{readme}"""

MOCK_PREFIX = "[MOCK] "
MAX_MOCK_FACTS = 3

_TITLE_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_BULLET_PATTERN = re.compile(r"^[-*]\s+(.+)$", re.MULTILINE)


@dataclass
class SummaryResult:
    success: bool
    summary: Optional[str] = None
    cool_facts: list[str] = field(default_factory=list)
    error: Optional[str] = None
    mock: bool = False

    @classmethod
    def ok(cls, summary: str, cool_facts: list[str], mock: bool = False) -> "SummaryResult":
        return cls(success=True, summary=summary, cool_facts=list(cool_facts), mock=mock)

    @classmethod
    def failure(cls, message: str) -> "SummaryResult":
        return cls(success=False, error=message)


def mock_summary(readme: str) -> SummaryResult:
    """Deterministic placeholder built from the README's title and first bullets."""
    title_match = _TITLE_PATTERN.search(readme)
    title = title_match.group(1).strip() if title_match else "This project"

    features = [m.strip() for m in _BULLET_PATTERN.findall(readme)[:MAX_MOCK_FACTS]]
    if features:
        facts = [f"{MOCK_PREFIX}{f}" for f in features]
    else:
        facts = [
            f"{MOCK_PREFIX}This is a placeholder fact #{i}"
            for i in range(1, MAX_MOCK_FACTS + 1)
        ]

    summary = (
        f"{title} is a software project. This is a MOCK summary generated for testing "
        "purposes because no OpenAI API key was provided. The actual summary would "
        "analyze the README content and provide meaningful insights."
    )
    return SummaryResult.ok(summary, facts, mock=True)


class SummarizationEngine:
    """Turns README text into a summary and a list of cool facts.

    ``completion`` is any object with the ``OpenAICompletionClient.complete``
    signature. Without one every call takes the offline path and is marked
    ``mock``; with one, a failed call is reported as a failure and never
    replaced by mock output.
    """

    def __init__(self, completion=None):
        self.completion = completion

    @property
    def mock_mode(self) -> bool:
        return self.completion is None

    async def summarize(self, readme: str) -> SummaryResult:
        if self.completion is None:
            logger.info("MOCK MODE: no completion credential configured, returning mock summary")
            return mock_summary(readme)

        try:
            result = await self.completion.complete(
                SYSTEM_PROMPT,
                USER_PROMPT_TEMPLATE.format(readme=readme),
                RepoSummary,
                REPO_SUMMARY_JSON_SCHEMA,
                schema_name="repo_summary",
            )
        except BlingoError as exc:
            logger.warning("Summarization failed: %s", exc.message)
            return SummaryResult.failure(exc.message or "Failed to summarize repository")
        except Exception as exc:
            logger.exception("Unexpected summarization error")
            return SummaryResult.failure(str(exc) or "Failed to summarize repository")

        return SummaryResult.ok(result.summary, result.cool_facts)
