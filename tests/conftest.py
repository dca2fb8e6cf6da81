"""Shared fixtures for Story Crafter tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from storycrafter.models import (
    Character,
    JsonPrompt,
    PromptDetails,
    ScriptDraft,
    VideoIdea,
    VideoMetadata,
)
from storycrafter.prompts import VISUAL_STYLE
from storycrafter.storage import MemoryStorage
from storycrafter.store import ProjectStore

SCRIPT = """Title: Leo and the Paper Boat

Characters:
*   **LEO_01**: "Mama Cat's son. A small, energetic orange tabby kitten."

[SCENE 1: The Puddle]
Action: LEO_01 pushes a paper boat into a rain puddle.

[SCENE 2: The Current]
Action: The boat drifts toward the storm drain as LEO_01 chases it.
"""


def make_prompt(scene_number: int, action: str = "LEO_01 pushes a boat.") -> JsonPrompt:
    return JsonPrompt(
        scene_number=scene_number,
        duration_seconds=8,
        characters=[Character(name="LEO_01", description="An orange tabby kitten.")],
        prompt_details=PromptDetails(
            setting="A garden after rain",
            action=action,
            emotion_mood="Playful",
            camera_shot="Close-up on LEO_01",
            visual_style=VISUAL_STYLE,
        ),
    )


class FakeClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ProjectStore(storage, clock=FakeClock())


@pytest.fixture
def ideas():
    return [
        VideoIdea(title="🌧️ Paper Boat", idea="Leo sails a paper boat."),
        VideoIdea(title="🦋 Butterfly Chase", idea="Neko follows a butterfly."),
        VideoIdea(title="🔥 Winter Night", idea="Mama Cat keeps the kittens warm."),
    ]


@pytest.fixture
def prompts():
    return [
        make_prompt(1, "LEO_01 pushes a paper boat into a rain puddle."),
        make_prompt(2, "The boat drifts toward the storm drain as LEO_01 chases it."),
    ]


@pytest.fixture
def video_metadata():
    return VideoMetadata(
        titles=["Title A ⛵", "Title B 🐱", "Title C 🌧️"],
        description="Leo learns about rain. Like and subscribe!",
        hashtags=[f"tag{i}" for i in range(10)],
    )


@pytest.fixture
def gateway(ideas, prompts, video_metadata):
    """Gateway double whose stage methods succeed by default."""
    mock = MagicMock()
    mock.generate_ideas = AsyncMock(return_value=ideas)
    mock.generate_script = AsyncMock(
        return_value=ScriptDraft(script=SCRIPT, title="Leo and the Paper Boat"),
    )
    mock.generate_scene_prompts = AsyncMock(return_value=prompts)
    mock.generate_metadata = AsyncMock(return_value=video_metadata)
    return mock
