"""Models for user story documents."""

from collections.abc import Sequence

from pydantic import Field

from story_automation.models.base import Model


class UserStory(Model):
    """A user story loaded from a story file."""

    story: str = Field(..., description="Free-text user story")
    title: str | None = Field(default=None, description="Optional scenario title")
    project_id: str | None = Field(default=None, description="Owning project")
    context: str = Field(default="", description="Project context for generation")
    tags: Sequence[str] = Field(default_factory=list)
