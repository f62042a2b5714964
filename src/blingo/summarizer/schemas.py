"""Structured output contract for README summarization."""

from pydantic import BaseModel, Field


class RepoSummary(BaseModel):
    summary: str = Field(
        ..., description="A concise summary of the repository from its README (2-3 sentences)"
    )
    cool_facts: list[str] = Field(
        ...,
        min_length=3,
        description="A list of at least 3 cool or interesting facts/features from the README",
    )


# Wire schema for strict structured output; the minimum fact count is checked
# by RepoSummary after the call.
REPO_SUMMARY_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "summary": {
            "type": "string",
            "description": "A concise summary of the repository from its README (2-3 sentences)",
        },
        "cool_facts": {
            "type": "array",
            "items": {"type": "string"},
            "description": "A list of at least 3 cool or interesting facts/features from the README",
        },
    },
    "required": ["summary", "cool_facts"],
    "additionalProperties": False,
}
