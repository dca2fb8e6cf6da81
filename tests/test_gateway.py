import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import SCRIPT, make_prompt
from storycrafter.config import GatewayConfig, GenerationConfig
from storycrafter.errors import (
    ConfigurationError,
    PreconditionError,
    Stage,
    TransportError,
    ValidationError,
)
from storycrafter.gateway import ModelGateway, extract_title
from storycrafter.models import serialize_prompts
from storycrafter.prompts import VISUAL_STYLE


@pytest.fixture
def mock_genai_client():
    with patch("storycrafter.gateway.genai.Client") as mock:
        yield mock


def _respond(mock_genai_client, text):
    response = MagicMock()
    response.text = text
    generate = AsyncMock(return_value=response)
    mock_genai_client.return_value.aio.models.generate_content = generate
    return generate


IDEAS_JSON = json.dumps(
    [
        {"title": "🌧️ Paper Boat", "idea": "Leo sails a paper boat."},
        {"title": "🦋 Butterfly", "idea": "Neko follows a butterfly."},
        {"title": "🔥 Winter", "idea": "Mama Cat keeps the kittens warm."},
    ],
)

METADATA_JSON = json.dumps(
    {
        "titles": ["A", "B", "C"],
        "description": "Watch the full story!",
        "hashtags": ["#catstory", "familylove"] + [f"tag{i}" for i in range(8)],
    },
)


def test_gateway_init(mock_genai_client) -> None:
    gateway = ModelGateway(api_key="fake-key")
    mock_genai_client.assert_called_with(api_key="fake-key")
    assert gateway.client is not None


def test_gateway_init_missing_key() -> None:
    with pytest.raises(ConfigurationError, match="API Key is missing"):
        ModelGateway(api_key="")


def test_gateway_accepts_client() -> None:
    client = MagicMock()
    assert ModelGateway(client=client).client is client


def test_generate_ideas_default_brief(mock_genai_client) -> None:
    generate = _respond(mock_genai_client, IDEAS_JSON)
    gateway = ModelGateway(api_key="key")

    ideas = asyncio.run(gateway.generate_ideas("   "))

    assert len(ideas) == 3
    assert all(i.title and i.idea for i in ideas)
    kwargs = generate.call_args.kwargs
    assert "Mama Cat (wise, loving, protective)" in kwargs["contents"]
    assert kwargs["model"] == "gemini-2.5-flash"
    assert kwargs["config"].temperature == 0.8
    assert kwargs["config"].top_p == 0.9
    assert kwargs["config"].response_mime_type == "application/json"
    assert kwargs["config"].response_schema is not None


def test_generate_ideas_user_brief(mock_genai_client) -> None:
    generate = _respond(mock_genai_client, IDEAS_JSON)
    gateway = ModelGateway(api_key="key")

    asyncio.run(gateway.generate_ideas("space exploration for beginners"))

    contents = generate.call_args.kwargs["contents"]
    assert '"space exploration for beginners"' in contents
    assert "Character Context" in contents


@pytest.mark.parametrize(
    "payload",
    [
        '{"title": "T", "idea": "I"}',
        '[{"title": "", "idea": "I"}]',
        '[{"title": "T"}]',
        "Here are your ideas!",
    ],
)
def test_generate_ideas_invalid_payload(mock_genai_client, payload) -> None:
    _respond(mock_genai_client, payload)
    gateway = ModelGateway(api_key="key")

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(gateway.generate_ideas(""))
    assert excinfo.value.stage == Stage.IDEAS
    assert excinfo.value.user_message.startswith("Failed to generate ideas: ")


def test_transport_error_is_wrapped(mock_genai_client) -> None:
    mock_genai_client.return_value.aio.models.generate_content = AsyncMock(
        side_effect=Exception("API key not valid"),
    )
    gateway = ModelGateway(api_key="key")

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(gateway.generate_ideas(""))

    error = excinfo.value
    assert error.detail == "API key not valid"
    assert error.user_message == (
        "Failed to generate ideas: Failed to communicate with the AI model "
        "for idea generation: API key not valid"
    )
    assert isinstance(error.__cause__, Exception)


def test_single_attempt_by_default(mock_genai_client) -> None:
    generate = AsyncMock(side_effect=Exception("Fail"))
    mock_genai_client.return_value.aio.models.generate_content = generate
    gateway = ModelGateway(api_key="key")

    with pytest.raises(TransportError):
        asyncio.run(gateway.generate_metadata(SCRIPT))
    assert generate.await_count == 1


def test_configured_retries(mock_genai_client) -> None:
    response = MagicMock()
    response.text = IDEAS_JSON
    generate = AsyncMock(side_effect=[Exception("Fail"), response])
    mock_genai_client.return_value.aio.models.generate_content = generate
    stage_config = GenerationConfig(retries=1, min_wait=0, max_wait=0)
    gateway = ModelGateway(api_key="key", config=GatewayConfig(ideas=stage_config))

    ideas = asyncio.run(gateway.generate_ideas(""))

    assert len(ideas) == 3
    assert generate.await_count == 2


def test_invalid_payload_is_not_retried(mock_genai_client) -> None:
    generate = _respond(mock_genai_client, "not json")
    stage_config = GenerationConfig(retries=3, min_wait=0, max_wait=0)
    gateway = ModelGateway(api_key="key", config=GatewayConfig(ideas=stage_config))

    with pytest.raises(ValidationError):
        asyncio.run(gateway.generate_ideas(""))
    assert generate.await_count == 1


def test_generate_script(mock_genai_client) -> None:
    generate = _respond(mock_genai_client, SCRIPT)
    gateway = ModelGateway(api_key="key")

    draft = asyncio.run(gateway.generate_script("Leo sails a paper boat.", "3 minutes"))

    assert draft.script == SCRIPT
    assert draft.title == "Leo and the Paper Boat"
    kwargs = generate.call_args.kwargs
    assert "Leo sails a paper boat." in kwargs["contents"]
    assert "3 minutes" in kwargs["contents"]
    assert "**MAMA_CAT**" in kwargs["contents"]
    assert "**LEO_01**" in kwargs["contents"]
    assert "**NEKO_01**" in kwargs["contents"]
    assert kwargs["config"].response_schema is None
    assert kwargs["config"].temperature == 0.7


def test_generate_script_title_fallback(mock_genai_client) -> None:
    _respond(mock_genai_client, "[SCENE 1: Start]\nAction: Leo wakes up.")
    gateway = ModelGateway(api_key="key")

    draft = asyncio.run(gateway.generate_script("idea", "1 minute"))

    assert draft.title == "Untitled Video"


def test_generate_script_requires_idea(mock_genai_client) -> None:
    generate = _respond(mock_genai_client, SCRIPT)
    gateway = ModelGateway(api_key="key")

    with pytest.raises(PreconditionError):
        asyncio.run(gateway.generate_script("  ", "3 minutes"))
    generate.assert_not_called()


def test_generate_script_empty_response(mock_genai_client) -> None:
    _respond(mock_genai_client, None)
    gateway = ModelGateway(api_key="key")

    with pytest.raises(ValidationError):
        asyncio.run(gateway.generate_script("idea", "3 minutes"))


def test_generate_scene_prompts(mock_genai_client) -> None:
    prompts = [make_prompt(1), make_prompt(2)]
    generate = _respond(mock_genai_client, serialize_prompts(prompts))
    gateway = ModelGateway(api_key="key")

    result = asyncio.run(gateway.generate_scene_prompts(SCRIPT))

    assert result == prompts
    kwargs = generate.call_args.kwargs
    assert SCRIPT in kwargs["contents"]
    assert VISUAL_STYLE in kwargs["contents"]
    assert "Do not summarize or change it." in kwargs["contents"]
    assert kwargs["config"].temperature == 0.2
    assert kwargs["config"].top_p is None


@pytest.mark.parametrize(
    "payload",
    [
        '{"scene_number": 1}',
        '[{"scene_number": 1, "duration_seconds": 8, "characters": []}]',
        "```json\n[]\n```",
    ],
)
def test_generate_scene_prompts_invalid(mock_genai_client, payload) -> None:
    _respond(mock_genai_client, payload)
    gateway = ModelGateway(api_key="key")

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(gateway.generate_scene_prompts(SCRIPT))
    assert excinfo.value.stage == Stage.SCENE_PROMPTS


def test_generate_metadata(mock_genai_client) -> None:
    _respond(mock_genai_client, METADATA_JSON)
    gateway = ModelGateway(api_key="key")

    metadata = asyncio.run(gateway.generate_metadata(SCRIPT))

    assert metadata.titles == ["A", "B", "C"]
    assert metadata.hashtags[0] == "catstory"
    assert len(metadata.hashtags) == 10


@pytest.mark.parametrize(
    "payload",
    [
        '{"titles": ["A"], "description": "D"}',
        '{"titles": ["A"], "description": "", "hashtags": ["x"]}',
        '{"titles": [], "description": "D", "hashtags": ["x"]}',
    ],
)
def test_generate_metadata_invalid(mock_genai_client, payload) -> None:
    _respond(mock_genai_client, payload)
    gateway = ModelGateway(api_key="key")

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(gateway.generate_metadata(SCRIPT))
    assert excinfo.value.user_message.startswith("Failed to generate metadata: ")


def test_extract_title() -> None:
    assert extract_title("Intro\nTitle:   The Storm  \nScene") == "The Storm"
    assert extract_title("No title here") == "Untitled Video"
    assert extract_title("Title:\nScene") == "Untitled Video"
