"""Pydantic data models for Story Crafter."""

from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

DEFAULT_TITLE = "Untitled Video"


class VideoIdea(BaseModel):
    """A freshly generated video idea."""

    title: str
    idea: str


class SavedIdea(BaseModel):
    """An idea bookmarked for later project creation."""

    id: int
    text: str


class ProjectStatus(str, Enum):
    """Lifecycle state of a project."""

    WORKING = "working"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class Character(BaseModel):
    """A character appearing in a scene."""

    name: str
    description: str


class PromptDetails(BaseModel):
    """Visual direction for a single scene."""

    setting: str
    action: str
    emotion_mood: str
    camera_shot: str
    visual_style: str


class JsonPrompt(BaseModel):
    """Structured prompt describing one video scene."""

    scene_number: int = Field(ge=1)
    duration_seconds: int = Field(gt=0)
    characters: list[Character]
    prompt_details: PromptDetails


class VideoMetadata(BaseModel):
    """Publishing metadata generated from a script."""

    titles: list[str]
    description: str
    hashtags: list[str]


class Project(BaseModel):
    """The persisted unit of work tracking one idea through the pipeline."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    idea: str
    script: str = ""
    json_prompts: str = Field(default="", alias="json")
    status: ProjectStatus = ProjectStatus.WORKING
    created_at: datetime = Field(alias="createdAt")
    metadata: VideoMetadata | None = None


class ScriptDraft(BaseModel):
    """Raw output of the script stage."""

    script: str
    title: str


class FreshIdeaSource(BaseModel):
    """A project source taken from a just-generated idea."""

    kind: Literal["fresh"] = "fresh"
    title: str
    idea: str


class SavedIdeaSource(BaseModel):
    """A project source taken from a saved idea."""

    kind: Literal["saved"] = "saved"
    id: int
    text: str


IdeaSource = Annotated[FreshIdeaSource | SavedIdeaSource, Field(discriminator="kind")]


class ScriptStageResult(BaseModel):
    """Everything the script stage committed to a project."""

    project_id: int
    script: str
    title: str
    prompts: list[JsonPrompt]
    json_prompts: str
    warnings: list[str] = Field(default_factory=list)


PROJECTS_ADAPTER = TypeAdapter(list[Project])
SAVED_IDEAS_ADAPTER = TypeAdapter(list[SavedIdea])
PROMPTS_ADAPTER = TypeAdapter(list[JsonPrompt])


def serialize_prompts(prompts: list[JsonPrompt]) -> str:
    """Serialize prompts as an indented JSON array."""
    return PROMPTS_ADAPTER.dump_json(prompts, indent=2).decode("utf-8")


def parse_prompts(text: str) -> list[JsonPrompt]:
    """Parse a JSON array of prompts.

    Raises:
        pydantic.ValidationError: If the text is not a valid prompt array.

    """
    return PROMPTS_ADAPTER.validate_json(text)


def prompt_warnings(prompts: list[JsonPrompt]) -> list[str]:
    """Report data-quality problems in a prompt array without rejecting it.

    Duplicate scene numbers, numbering that does not run 1..n, and a visual
    style that changes between scenes are all tolerated but flagged.
    """
    if not prompts:
        return ["No scenes were extracted from the script"]

    warnings = []
    numbers = [p.scene_number for p in prompts]

    duplicates = sorted(n for n, count in Counter(numbers).items() if count > 1)
    if duplicates:
        joined = ", ".join(str(n) for n in duplicates)
        warnings.append(f"Duplicate scene numbers: {joined}")

    expected = list(range(1, len(numbers) + 1))
    if not duplicates and numbers != expected:
        warnings.append(
            "Scene numbers are not sequential from 1: "
            + ", ".join(str(n) for n in numbers),
        )

    styles = {p.prompt_details.visual_style for p in prompts}
    if len(styles) > 1:
        warnings.append(f"Visual style differs between scenes ({len(styles)} variants)")
    return warnings
