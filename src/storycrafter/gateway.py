"""Gateway for every call made to the Google Gemini API."""

import logging
import re

from google import genai
from google.genai import types
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from . import prompts
from .config import GatewayConfig, GenerationConfig
from .errors import (
    ConfigurationError,
    PreconditionError,
    Stage,
    TransportError,
    ValidationError,
)
from .models import (
    DEFAULT_TITLE,
    PROMPTS_ADAPTER,
    JsonPrompt,
    ScriptDraft,
    VideoIdea,
    VideoMetadata,
)

logger = logging.getLogger(__name__)

IDEAS_ADAPTER = TypeAdapter(list[VideoIdea])
TITLE_PATTERN = re.compile(r"^Title:[ \t]*(.*)$", re.MULTILINE)

EXPECTED_TITLES = 3
EXPECTED_HASHTAGS = 10


def extract_title(script: str) -> str:
    """Return the text after the first ``Title:`` line, or the default title."""
    match = TITLE_PATTERN.search(script)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return DEFAULT_TITLE


class ModelGateway:
    """Service to interact with the Google Gemini API for every pipeline stage."""

    def __init__(
        self,
        api_key: str | None = None,
        client: genai.Client | None = None,
        config: GatewayConfig | None = None,
    ) -> None:
        """Initialize the gateway with an API key or a ready client."""
        if client is None:
            if not api_key:
                msg = (
                    "API Key is missing. "
                    "Set GEMINI_API_KEY env var or pass it as an argument."
                )
                raise ConfigurationError(msg, config_key="GEMINI_API_KEY")
            client = genai.Client(api_key=api_key)
        self.client = client
        self.config = config or GatewayConfig()

    async def _generate(
        self,
        stage: Stage,
        prompt: str,
        config: GenerationConfig,
        schema: types.Schema | None = None,
    ) -> str:
        """Send one generation request and return the response text.

        Transport failures are retried ``config.retries`` times and then
        raised as ``TransportError``.
        """
        generate_config = types.GenerateContentConfig(
            temperature=config.temperature,
            top_p=config.top_p,
            response_mime_type="application/json" if schema else None,
            response_schema=schema,
        )

        async def _attempt() -> str:
            try:
                response = await self.client.aio.models.generate_content(
                    model=config.model,
                    contents=prompt,
                    config=generate_config,
                )
            except Exception as e:  # noqa: BLE001
                logger.error("Transport failure during %s: %s", stage.value, e)
                raise TransportError(stage, str(e)) from e
            return response.text or ""

        retryer = AsyncRetrying(
            stop=stop_after_attempt(config.retries + 1),
            wait=wait_exponential(
                multiplier=2,
                min=config.min_wait,
                max=config.max_wait,
            ),
            retry=retry_if_exception_type(TransportError),
            reraise=True,
        )
        return await retryer(_attempt)

    def _invalid(self, stage: Stage, detail: str) -> ValidationError:
        logger.error("Invalid response during %s: %s", stage.value, detail)
        return ValidationError(stage, detail)

    async def generate_ideas(self, instructions: str) -> list[VideoIdea]:
        """Generate three story ideas.

        Args:
            instructions: Free-text brief. Blank selects the default cat-family brief.

        Returns:
            list[VideoIdea]: Ideas with non-empty titles and outlines.

        Raises:
            TransportError: If the model could not be reached.
            ValidationError: If the response is not a valid idea array.

        """
        text = await self._generate(
            Stage.IDEAS,
            prompts.ideas_prompt(instructions),
            self.config.ideas,
            schema=prompts.IDEAS_SCHEMA,
        )
        try:
            ideas = IDEAS_ADAPTER.validate_json(text.strip())
        except PydanticValidationError as e:
            raise self._invalid(Stage.IDEAS, f"not a valid array of ideas: {e}") from e

        if any(not i.title.strip() or not i.idea.strip() for i in ideas):
            raise self._invalid(Stage.IDEAS, "an idea is missing its title or outline")
        return ideas

    async def generate_script(self, story_idea: str, duration_label: str) -> ScriptDraft:
        """Expand an idea into a scene-by-scene visual script.

        The duration label is only a pacing hint and is passed through as text.
        """
        if not story_idea.strip():
            msg = "A video idea is required to generate a script."
            raise PreconditionError(msg)

        script = await self._generate(
            Stage.SCRIPT,
            prompts.script_prompt(story_idea, duration_label),
            self.config.script,
        )
        if not script.strip():
            raise self._invalid(Stage.SCRIPT, "empty script")
        return ScriptDraft(script=script, title=extract_title(script))

    async def generate_scene_prompts(self, script: str) -> list[JsonPrompt]:
        """Convert a script into structured scene prompts."""
        if not script.strip():
            msg = "A script is required to generate JSON prompts."
            raise PreconditionError(msg)

        text = await self._generate(
            Stage.SCENE_PROMPTS,
            prompts.scene_prompts_prompt(script),
            self.config.scene_prompts,
            schema=prompts.SCENE_PROMPTS_SCHEMA,
        )
        try:
            return PROMPTS_ADAPTER.validate_json(text.strip())
        except PydanticValidationError as e:
            raise self._invalid(
                Stage.SCENE_PROMPTS,
                f"not a valid array of scene prompts: {e}",
            ) from e

    async def generate_metadata(self, script: str) -> VideoMetadata:
        """Generate titles, a description and hashtags for a script."""
        if not script.strip():
            msg = "A script must be generated first to create titles and descriptions."
            raise PreconditionError(msg)

        text = await self._generate(
            Stage.METADATA,
            prompts.metadata_prompt(script),
            self.config.metadata,
            schema=prompts.METADATA_SCHEMA,
        )
        try:
            metadata = VideoMetadata.model_validate_json(text.strip())
        except PydanticValidationError as e:
            raise self._invalid(Stage.METADATA, f"not valid metadata: {e}") from e

        if not metadata.titles or not metadata.description.strip() or not metadata.hashtags:
            raise self._invalid(Stage.METADATA, "titles, description or hashtags missing")

        if len(metadata.titles) != EXPECTED_TITLES:
            logger.warning("Expected %d titles, got %d", EXPECTED_TITLES, len(metadata.titles))
        if len(metadata.hashtags) != EXPECTED_HASHTAGS:
            logger.warning(
                "Expected %d hashtags, got %d",
                EXPECTED_HASHTAGS,
                len(metadata.hashtags),
            )
        metadata.hashtags = [tag.strip().lstrip("#") for tag in metadata.hashtags]
        return metadata

