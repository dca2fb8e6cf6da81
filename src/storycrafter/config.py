"""Configuration objects and environment loading."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_DATA_DIR = Path.home() / ".story_crafter"


class GenerationConfig(BaseModel):
    """Sampling and retry configuration for one generation stage."""

    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    top_p: float | None = None
    retries: int = 0
    min_wait: int = 2
    max_wait: int = 10


class GatewayConfig(BaseModel):
    """Per-stage configuration for the model gateway."""

    ideas: GenerationConfig = Field(
        default_factory=lambda: GenerationConfig(temperature=0.8, top_p=0.9),
    )
    script: GenerationConfig = Field(
        default_factory=lambda: GenerationConfig(temperature=0.7, top_p=0.9),
    )
    scene_prompts: GenerationConfig = Field(
        default_factory=lambda: GenerationConfig(temperature=0.2),
    )
    metadata: GenerationConfig = Field(
        default_factory=lambda: GenerationConfig(temperature=0.7),
    )

    def with_model(self, model: str) -> "GatewayConfig":
        """Return a copy using ``model`` for every stage."""
        return GatewayConfig(
            ideas=self.ideas.model_copy(update={"model": model}),
            script=self.script.model_copy(update={"model": model}),
            scene_prompts=self.scene_prompts.model_copy(update={"model": model}),
            metadata=self.metadata.model_copy(update={"model": model}),
        )


class Settings(BaseModel):
    """Application settings resolved from the environment."""

    api_key: str | None = None
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "WARNING"
    model: str | None = None
    retries: int = 0

    def gateway_config(self) -> GatewayConfig:
        config = GatewayConfig()
        if self.model:
            config = config.with_model(self.model)
        if self.retries:
            for stage in ("ideas", "script", "scene_prompts", "metadata"):
                getattr(config, stage).retries = self.retries
        return config


def load_settings() -> Settings:
    """Load settings from ``.env`` and the process environment."""
    load_dotenv()
    data_dir = os.getenv("STORY_CRAFTER_DATA_DIR")
    return Settings(
        api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY"),
        data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
        log_level=os.getenv("STORY_CRAFTER_LOG_LEVEL", "WARNING"),
        model=os.getenv("STORY_CRAFTER_MODEL") or None,
        retries=int(os.getenv("STORY_CRAFTER_RETRIES", "0")),
    )
