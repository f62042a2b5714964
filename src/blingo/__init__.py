"""Blingo: API-key gated GitHub repository summarizer."""

from blingo.github.client import GitHubClient, parse_repo_url
from blingo.keys.generator import generate_api_key, matches_key_format
from blingo.summarizer.engine import SummarizationEngine, mock_summary

__all__ = [
    "GitHubClient",
    "parse_repo_url",
    "generate_api_key",
    "matches_key_format",
    "SummarizationEngine",
    "mock_summary",
]
__version__ = "0.1.0"
