"""Pydantic schemas for the summarize endpoint."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SummarizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    github_url: Optional[str] = Field(default=None, alias="githubUrl")
    readme_content: Optional[str] = Field(default=None, alias="readmeContent")


class SummarizeResponse(BaseModel):
    """Unified response. Every field is always emitted; ``mock`` and ``error`` only when set."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    github_url: Optional[str] = Field(default=None, alias="githubUrl")
    has_readme: bool = Field(default=False, alias="hasReadme")
    readme_preview: Optional[str] = Field(default=None, alias="readmePreview")
    summary: Optional[str] = None
    cool_facts: list[str] = Field(default_factory=list)
    stars: Optional[int] = None
    forks: Optional[int] = None
    open_issues: Optional[int] = Field(default=None, alias="openIssues")
    language: Optional[str] = None
    description: Optional[str] = None
    homepage: Optional[str] = None
    license: Optional[str] = None
    latest_version: Optional[str] = Field(default=None, alias="latestVersion")
    release_name: Optional[str] = Field(default=None, alias="releaseName")
    release_date: Optional[str] = Field(default=None, alias="releaseDate")
    release_url: Optional[str] = Field(default=None, alias="releaseUrl")
    usage: int = 0
    limit: int
    remaining: int
    mock: Optional[bool] = None
    error: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude={"mock", "error"})
        if self.mock:
            data["mock"] = True
        if self.error:
            data["error"] = self.error
        return data


class StatusResponse(BaseModel):
    success: bool = True
    message: str
    usage: int
    limit: int
    remaining: int
