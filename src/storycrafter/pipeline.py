"""Sequencing of the generation stages for a project."""

import logging

from .errors import PreconditionError, ProjectNotFoundError
from .gateway import ModelGateway
from .models import (
    Project,
    ProjectStatus,
    ScriptStageResult,
    VideoIdea,
    VideoMetadata,
    prompt_warnings,
    serialize_prompts,
)
from .store import ProjectStore

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs each stage against the gateway and commits results to the store.

    Every precondition is checked before the first remote call. A failing
    call is never committed; sub-steps that already succeeded stay committed.
    """

    def __init__(self, gateway: ModelGateway, store: ProjectStore) -> None:
        self.gateway = gateway
        self.store = store

    def _require_project(self, project_id: int | None, message: str) -> Project:
        if project_id is None:
            raise PreconditionError(message)
        try:
            return self.store.get_project(project_id)
        except ProjectNotFoundError as e:
            raise PreconditionError(message) from e

    def check_script_stage(self, project_id: int | None, idea: str) -> Project:
        """Validate script stage inputs without touching any state."""
        message = "Please provide a video idea and have an active project to generate a script."
        if not idea.strip():
            raise PreconditionError(message)
        project = self._require_project(project_id, message)
        if project.status != ProjectStatus.WORKING:
            msg = (
                f"Project {project.id} is already {project.status.value}; "
                "start a new project to generate a new script."
            )
            raise PreconditionError(msg)
        return project

    def check_metadata_stage(self, project_id: int | None, script: str) -> Project:
        """Validate metadata stage inputs without touching any state."""
        message = "A script must be generated first to create titles and descriptions."
        if not script.strip():
            raise PreconditionError(message)
        project = self._require_project(project_id, message)
        if project.metadata is not None:
            msg = f"Metadata has already been generated for project {project.id}."
            raise PreconditionError(msg)
        return project

    async def run_idea_stage(self, instructions: str) -> list[VideoIdea]:
        """Generate ideas; nothing is stored until the user saves or promotes one."""
        ideas = await self.gateway.generate_ideas(instructions)
        logger.info("Generated %d ideas", len(ideas))
        return ideas

    async def run_script_stage(
        self,
        project_id: int | None,
        idea: str,
        duration: str,
    ) -> ScriptStageResult:
        """Generate the script, then the scene prompts, for a working project.

        Steps:
            1. Clear previous script, prompts and metadata.
            2. Generate the script and commit ``script`` and ``title``.
            3. Generate scene prompts from that script.
            4. Commit ``json`` and move the project to ``completed``.

        A failure in step 3 leaves the script committed and the status as it was.

        Raises:
            PreconditionError: If there is no active project, the idea is
                blank, or the project has already completed generation.
            GenerationError: If either remote call fails.

        """
        project = self.check_script_stage(project_id, idea)
        self.store.reset_outputs(project.id)

        logger.info("Generating script for project %d", project.id)
        draft = await self.gateway.generate_script(idea, duration)
        self.store.update_project(project.id, script=draft.script, title=draft.title)

        logger.info("Generating scene prompts for project %d", project.id)
        scene_prompts = await self.gateway.generate_scene_prompts(draft.script)
        json_prompts = serialize_prompts(scene_prompts)
        warnings = prompt_warnings(scene_prompts)
        for warning in warnings:
            logger.warning("Project %d: %s", project.id, warning)

        self.store.update_project(
            project.id,
            json_prompts=json_prompts,
            status=ProjectStatus.COMPLETED,
        )
        return ScriptStageResult(
            project_id=project.id,
            script=draft.script,
            title=draft.title,
            prompts=scene_prompts,
            json_prompts=json_prompts,
            warnings=warnings,
        )

    async def run_metadata_stage(self, project_id: int | None, script: str) -> VideoMetadata:
        """Generate and attach metadata; a project's metadata is generated once."""
        project = self.check_metadata_stage(project_id, script)
        metadata = await self.gateway.generate_metadata(script)
        self.store.update_project(project.id, metadata=metadata)
        return metadata
