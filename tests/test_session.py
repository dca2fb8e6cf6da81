import asyncio

import pytest

from conftest import SCRIPT
from storycrafter.errors import (
    OperationInProgressError,
    SceneNotFoundError,
    Stage,
    TransportError,
    ValidationError,
)
from storycrafter.models import FreshIdeaSource, ProjectStatus, SavedIdeaSource
from storycrafter.pipeline import PipelineOrchestrator
from storycrafter.session import SessionController


@pytest.fixture
def session(gateway, store):
    return SessionController(PipelineOrchestrator(gateway, store), store)


def _start(session, ideas):
    return session.start_project(FreshIdeaSource(title=ideas[0].title, idea=ideas[0].idea))


def test_generate_ideas(session, ideas) -> None:
    result = asyncio.run(session.generate_ideas(""))

    assert result == ideas
    assert session.ideas == ideas
    assert session.is_loading is False
    assert session.last_error is None


def test_loading_flag_during_generation(session, gateway, ideas) -> None:
    seen = []

    async def fake_generate(instructions):
        seen.append(session.is_loading)
        return ideas

    gateway.generate_ideas.side_effect = fake_generate
    asyncio.run(session.generate_ideas("cats"))

    assert seen == [True]
    assert session.is_loading is False


def test_one_generation_in_flight(session, gateway, ideas) -> None:
    release = None

    async def slow_generate(instructions):
        await release.wait()
        return ideas

    gateway.generate_ideas.side_effect = slow_generate

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        first = asyncio.create_task(session.generate_ideas("one"))
        await asyncio.sleep(0)
        with pytest.raises(OperationInProgressError):
            await session.generate_ideas("two")
        assert session.instructions == "one"
        with pytest.raises(OperationInProgressError):
            await session.generate_metadata()
        release.set()
        return await first

    assert asyncio.run(scenario()) == ideas
    assert gateway.generate_ideas.await_count == 1
    assert session.last_error is None


def test_failure_records_error_and_next_action_clears_it(session, gateway, ideas) -> None:
    gateway.generate_ideas.side_effect = TransportError(Stage.IDEAS, "network down")

    assert asyncio.run(session.generate_ideas("")) is None
    assert session.last_error.startswith("Failed to generate ideas: ")
    assert "network down" in session.last_error
    assert session.is_loading is False

    gateway.generate_ideas.side_effect = None
    asyncio.run(session.generate_ideas(""))
    assert session.last_error is None


def test_start_project_from_fresh_idea(session, store, ideas) -> None:
    project = _start(session, ideas)

    assert project.title == ideas[0].title
    assert project.status == ProjectStatus.WORKING
    assert session.active_project_id == project.id
    assert session.idea_text == ideas[0].idea
    assert session.generator_tab == "script"
    assert session.main_tab == "generator"


def test_start_project_from_saved_idea(session, store) -> None:
    saved = session.save_idea("A saved idea")
    other = session.save_idea("Another idea")

    project = session.start_project(SavedIdeaSource(id=saved.id, text=saved.text))

    assert project.title == "Untitled Video"
    assert project.idea == "A saved idea"
    assert store.list_saved_ideas() == [other]
    assert [p.id for p in store.list_projects()] == [project.id]


def test_save_all_ideas(session, store, ideas) -> None:
    asyncio.run(session.generate_ideas(""))
    session.save_idea(ideas[0].idea)

    added = session.save_all_ideas()

    assert len(added) == 2
    assert len(store.list_saved_ideas()) == 3
    session.delete_idea(added[0].id)
    assert len(store.list_saved_ideas()) == 2


def test_generate_script_without_project(session, gateway) -> None:
    result = asyncio.run(session.generate_script(idea="An idea"))

    assert result is None
    assert "active project" in session.last_error
    assert session.is_loading is False
    gateway.generate_script.assert_not_awaited()


def test_generate_script_success(session, store, ideas, prompts) -> None:
    project = _start(session, ideas)

    result = asyncio.run(session.generate_script(duration="1 minute"))

    assert result.project_id == project.id
    assert session.script == SCRIPT
    assert session.prompts == prompts
    assert session.generator_tab == "json"
    assert session.duration == "1 minute"
    assert store.get_project(project.id).status == ProjectStatus.COMPLETED
    assert session.can_generate_metadata


def test_generate_script_partial_failure(session, gateway, store, ideas) -> None:
    project = _start(session, ideas)
    gateway.generate_scene_prompts.side_effect = ValidationError(Stage.SCENE_PROMPTS, "bad")

    assert asyncio.run(session.generate_script()) is None

    assert session.last_error.startswith("Failed to generate script or JSON prompts: ")
    assert session.script == SCRIPT
    assert session.prompts == []
    assert session.generator_tab == "script"
    assert store.get_project(project.id).status == ProjectStatus.WORKING


def test_generate_metadata_gating(session, gateway, store, ideas, video_metadata) -> None:
    project = _start(session, ideas)

    assert asyncio.run(session.generate_metadata()) is None
    assert "script must be generated" in session.last_error

    asyncio.run(session.generate_script())
    assert asyncio.run(session.generate_metadata()) == video_metadata
    assert session.metadata == video_metadata
    assert store.get_project(project.id).metadata == video_metadata
    assert not session.can_generate_metadata

    assert asyncio.run(session.generate_metadata()) is None
    assert "already been generated" in session.last_error
    assert gateway.generate_metadata.await_count == 1


def test_view_project_with_corrupt_json(session, store) -> None:
    project = store.create_project("idea")
    store.update_project(project.id, script=SCRIPT, json_prompts="{not json")

    viewed = session.project_action(project.id, "view")

    assert viewed.id == project.id
    assert session.prompts == []
    assert session.script == SCRIPT
    assert session.last_error is None
    assert session.generator_tab == "json"


@pytest.mark.parametrize(
    ("script", "json_prompts", "tab"),
    [("", "", "ideas"), ("S", "", "script")],
)
def test_view_selects_tab(session, store, script, json_prompts, tab) -> None:
    project = store.create_project("idea")
    store.update_project(project.id, script=script, json_prompts=json_prompts)
    session.main_tab = "library"

    session.project_action(project.id, "view")

    assert session.generator_tab == tab
    assert session.main_tab == "generator"


def test_archive_actions(session, store, ideas) -> None:
    project = _start(session, ideas)

    assert session.project_action(project.id, "archive") is None
    assert "cannot move" in session.last_error

    asyncio.run(session.generate_script())
    assert session.project_action(project.id, "archive").status == ProjectStatus.ARCHIVED
    assert session.project_action(project.id, "unarchive").status == ProjectStatus.COMPLETED


def test_delete_active_project(session, store, ideas) -> None:
    project = _start(session, ideas)

    session.project_action(project.id, "delete")

    assert store.list_projects() == []
    assert session.active_project_id is None
    assert asyncio.run(session.generate_script()) is None


def test_view_missing_project(session) -> None:
    assert session.project_action(404, "view") is None
    assert session.last_error == "Project 404 not found"


def test_commit_targets_starting_project(session, gateway, store, ideas) -> None:
    first = _start(session, ideas)
    second = store.create_project("other idea")
    draft = gateway.generate_script.return_value

    async def switch_then_generate(idea, duration):
        session.project_action(second.id, "view")
        return draft

    gateway.generate_script.side_effect = switch_then_generate

    asyncio.run(session.generate_script())

    assert store.get_project(first.id).status == ProjectStatus.COMPLETED
    assert store.get_project(second.id).status == ProjectStatus.WORKING
    assert session.active_project_id == second.id
    assert session.script == ""


def test_copy_prompt(session, ideas) -> None:
    _start(session, ideas)
    asyncio.run(session.generate_script())

    payload = session.copy_prompt(2)

    assert '"scene_number": 2' in payload
    assert session.copied_scenes == {2}
    with pytest.raises(SceneNotFoundError):
        session.copy_prompt(99)
    assert session.copy_all_json() == session.json_prompts


def test_snapshot(session, store, ideas) -> None:
    _start(session, ideas)
    asyncio.run(session.generate_script())
    session.copy_prompt(1)

    snapshot = session.snapshot()

    assert snapshot.is_loading is False
    assert snapshot.generator_tab == "json"
    assert snapshot.copied_scenes == [1]
    assert len(snapshot.projects) == 1
    assert snapshot.can_generate_metadata is True
    snapshot.prompts.clear()
    assert session.prompts


def test_transport_and_validation_failures_read_alike(session, gateway) -> None:
    gateway.generate_ideas.side_effect = TransportError(Stage.IDEAS, "x")
    asyncio.run(session.generate_ideas(""))
    transport_message = session.last_error

    gateway.generate_ideas.side_effect = ValidationError(Stage.IDEAS, "x")
    asyncio.run(session.generate_ideas(""))
    validation_message = session.last_error

    expected = (
        "Failed to generate ideas: "
        "Failed to communicate with the AI model for idea generation"
    )
    assert transport_message.startswith(expected)
    assert validation_message == expected
