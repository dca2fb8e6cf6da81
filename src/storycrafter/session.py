"""Session state and dispatch of user intents."""

import logging
from collections.abc import Awaitable, Callable
from typing import Literal, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    GenerationError,
    OperationInProgressError,
    PreconditionError,
    ProjectNotFoundError,
    SceneNotFoundError,
    StoryCrafterError,
)
from .models import (
    FreshIdeaSource,
    IdeaSource,
    JsonPrompt,
    Project,
    SavedIdea,
    SavedIdeaSource,
    ScriptStageResult,
    VideoIdea,
    VideoMetadata,
    parse_prompts,
)
from .pipeline import PipelineOrchestrator
from .store import ProjectStore

logger = logging.getLogger(__name__)

GeneratorTab = Literal["ideas", "script", "json"]
MainTab = Literal["generator", "library"]
ProjectAction = Literal["archive", "unarchive", "delete", "view"]

DEFAULT_DURATION = "3 minutes"

T = TypeVar("T")


class SessionSnapshot(BaseModel):
    """Read-only view of the session for a presentation layer."""

    is_loading: bool
    last_error: str | None
    main_tab: MainTab
    generator_tab: GeneratorTab
    active_project_id: int | None
    instructions: str
    ideas: list[VideoIdea]
    idea_text: str
    duration: str
    script: str
    json_prompts: str
    prompts: list[JsonPrompt]
    copied_scenes: list[int]
    metadata: VideoMetadata | None
    warnings: list[str] = Field(default_factory=list)
    can_generate_metadata: bool
    projects: list[Project]
    saved_ideas: list[SavedIdea]


def load_stored_prompts(text: str) -> list[JsonPrompt]:
    """Parse a project's stored prompts, falling back to an empty list."""
    if not text:
        return []
    try:
        return parse_prompts(text)
    except PydanticValidationError as e:
        logger.warning("Stored prompts could not be parsed (%d errors)", e.error_count())
        return []


class SessionController:
    """Owns the active project, view selection, loading and error state."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator | None,
        store: ProjectStore,
    ) -> None:
        self.orchestrator = orchestrator
        self.store = store

        self.is_loading = False
        self.last_error: str | None = None
        self.main_tab: MainTab = "generator"
        self.generator_tab: GeneratorTab = "ideas"
        self.active_project_id: int | None = None

        self.instructions = ""
        self.ideas: list[VideoIdea] = []

        self.idea_text = ""
        self.duration = DEFAULT_DURATION
        self.script = ""
        self.json_prompts = ""
        self.prompts: list[JsonPrompt] = []
        self.copied_scenes: set[int] = set()
        self.metadata: VideoMetadata | None = None
        self.warnings: list[str] = []

    # -- helpers -------------------------------------------------------------

    async def _run(self, operation: Callable[[], Awaitable[T]]) -> T | None:
        """Run one generation, recording its error instead of raising it."""
        if self.is_loading:
            raise OperationInProgressError
        self.is_loading = True
        self.last_error = None
        try:
            return await operation()
        except GenerationError as e:
            logger.debug("%s during %s", type(e).__name__, e.stage.value)
            self.last_error = e.user_message
        except StoryCrafterError as e:
            self.last_error = e.message
        finally:
            self.is_loading = False
        return None

    def _clear_outputs(self) -> None:
        self.script = ""
        self.json_prompts = ""
        self.prompts = []
        self.copied_scenes = set()
        self.metadata = None
        self.warnings = []

    def _load_project(self, project: Project) -> None:
        self.active_project_id = project.id
        self.idea_text = project.idea
        self.script = project.script
        self.json_prompts = project.json_prompts
        self.prompts = load_stored_prompts(project.json_prompts)
        self.copied_scenes = set()
        self.metadata = project.metadata
        self.warnings = []

    @property
    def can_generate_metadata(self) -> bool:
        return (
            self.active_project_id is not None
            and bool(self.prompts)
            and self.metadata is None
            and not self.is_loading
        )

    # -- generation intents --------------------------------------------------

    async def generate_ideas(self, instructions: str) -> list[VideoIdea] | None:
        if self.is_loading:
            raise OperationInProgressError
        self.instructions = instructions

        async def operation() -> list[VideoIdea]:
            self.ideas = []
            self.ideas = await self.orchestrator.run_idea_stage(instructions)
            return self.ideas

        return await self._run(operation)

    async def generate_script(
        self,
        idea: str | None = None,
        duration: str | None = None,
    ) -> ScriptStageResult | None:
        """Run the script and scene prompt stages for the active project."""
        if self.is_loading:
            raise OperationInProgressError
        if idea is not None:
            self.idea_text = idea
        if duration is not None:
            self.duration = duration
        try:
            self.orchestrator.check_script_stage(self.active_project_id, self.idea_text)
        except PreconditionError as e:
            self.last_error = e.message
            return None

        project_id = self.active_project_id

        async def operation() -> ScriptStageResult:
            self._clear_outputs()
            try:
                result = await self.orchestrator.run_script_stage(
                    project_id,
                    self.idea_text,
                    self.duration,
                )
            except StoryCrafterError:
                self._refresh_from_store(project_id)
                raise
            if self.active_project_id == result.project_id:
                self.script = result.script
                self.json_prompts = result.json_prompts
                self.prompts = result.prompts
                self.warnings = result.warnings
                self.generator_tab = "json"
            return result

        return await self._run(operation)

    def _refresh_from_store(self, project_id: int) -> None:
        if self.active_project_id != project_id:
            return
        try:
            project = self.store.get_project(project_id)
        except ProjectNotFoundError:
            return
        self.script = project.script
        self.json_prompts = project.json_prompts
        self.prompts = load_stored_prompts(project.json_prompts)

    async def generate_metadata(self) -> VideoMetadata | None:
        if self.is_loading:
            raise OperationInProgressError
        try:
            self.orchestrator.check_metadata_stage(self.active_project_id, self.script)
        except PreconditionError as e:
            self.last_error = e.message
            return None

        project_id = self.active_project_id
        script = self.script

        async def operation() -> VideoMetadata:
            metadata = await self.orchestrator.run_metadata_stage(project_id, script)
            if self.active_project_id == project_id:
                self.metadata = metadata
            return metadata

        return await self._run(operation)

    # -- library intents -----------------------------------------------------

    def start_project(self, source: IdeaSource) -> Project:
        """Promote an idea into a new working project and make it active."""
        match source:
            case FreshIdeaSource(title=title, idea=text):
                project = self.store.create_project(text, title=title)
            case SavedIdeaSource(id=saved_id, text=text):
                project = self.store.create_project(text, source_saved_idea_id=saved_id)
            case _:
                msg = f"Unsupported idea source: {source!r}"
                raise TypeError(msg)

        self._load_project(project)
        self.generator_tab = "script"
        self.main_tab = "generator"
        return project

    def save_idea(self, text: str) -> SavedIdea:
        return self.store.save_idea(text)

    def save_all_ideas(self) -> list[SavedIdea]:
        return self.store.save_all_ideas(self.ideas)

    def delete_idea(self, idea_id: int) -> None:
        self.store.delete_idea(idea_id)

    def project_action(self, project_id: int, action: ProjectAction) -> Project | None:
        """Apply a library action; failures are recorded in ``last_error``."""
        try:
            if action == "view":
                project = self.store.get_project(project_id)
                self._load_project(project)
                if project.json_prompts:
                    self.generator_tab = "json"
                elif project.script:
                    self.generator_tab = "script"
                else:
                    self.generator_tab = "ideas"
                self.main_tab = "generator"
                return project
            if action == "archive":
                return self.store.archive(project_id)
            if action == "unarchive":
                return self.store.unarchive(project_id)
            if action == "delete":
                self.store.delete_project(project_id)
                if self.active_project_id == project_id:
                    self.active_project_id = None
                return None
        except StoryCrafterError as e:
            self.last_error = e.message
            return None
        msg = f"Unknown project action: {action}"
        raise ValueError(msg)

    # -- clipboard payloads --------------------------------------------------

    def copy_prompt(self, scene_number: int) -> str:
        """Return one scene prompt as JSON and mark the scene as copied."""
        for prompt in self.prompts:
            if prompt.scene_number == scene_number:
                self.copied_scenes.add(scene_number)
                return prompt.model_dump_json(indent=2)
        raise SceneNotFoundError(scene_number)

    def copy_all_json(self) -> str:
        return self.json_prompts

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            is_loading=self.is_loading,
            last_error=self.last_error,
            main_tab=self.main_tab,
            generator_tab=self.generator_tab,
            active_project_id=self.active_project_id,
            instructions=self.instructions,
            ideas=[i.model_copy() for i in self.ideas],
            idea_text=self.idea_text,
            duration=self.duration,
            script=self.script,
            json_prompts=self.json_prompts,
            prompts=[p.model_copy(deep=True) for p in self.prompts],
            copied_scenes=sorted(self.copied_scenes),
            metadata=self.metadata.model_copy(deep=True) if self.metadata else None,
            warnings=list(self.warnings),
            can_generate_metadata=self.can_generate_metadata,
            projects=self.store.list_projects(),
            saved_ideas=self.store.list_saved_ideas(),
        )
