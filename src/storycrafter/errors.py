"""Exception types for Story Crafter."""

from enum import Enum


class Stage(str, Enum):
    """A step of the generation pipeline."""

    IDEAS = "ideas"
    SCRIPT = "script"
    SCENE_PROMPTS = "scene_prompts"
    METADATA = "metadata"


STAGE_LABELS = {
    Stage.IDEAS: "idea generation",
    Stage.SCRIPT: "script generation",
    Stage.SCENE_PROMPTS: "JSON prompt generation",
    Stage.METADATA: "metadata generation",
}

STAGE_PREFIXES = {
    Stage.IDEAS: "Failed to generate ideas",
    Stage.SCRIPT: "Failed to generate script or JSON prompts",
    Stage.SCENE_PROMPTS: "Failed to generate script or JSON prompts",
    Stage.METADATA: "Failed to generate metadata",
}


class StoryCrafterError(Exception):
    """Base exception for all Story Crafter errors."""

    def __init__(self, message: str, error_code: str = "STORY_CRAFTER_ERROR") -> None:
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ConfigurationError(StoryCrafterError):
    """Raised when required configuration is missing."""

    def __init__(self, message: str, config_key: str | None = None) -> None:
        super().__init__(message, error_code="CONFIGURATION_ERROR")
        self.config_key = config_key


class GenerationError(StoryCrafterError):
    """Raised when a remote generation call fails for a stage."""

    def __init__(self, stage: Stage, message: str, error_code: str) -> None:
        super().__init__(message, error_code=error_code)
        self.stage = stage

    @property
    def user_message(self) -> str:
        """The message shown to the user for this failure."""
        return f"{STAGE_PREFIXES[self.stage]}: {self.message}"


class TransportError(GenerationError):
    """The remote call could not be completed."""

    def __init__(self, stage: Stage, detail: str) -> None:
        message = f"Failed to communicate with the AI model for {STAGE_LABELS[stage]}: {detail}"
        super().__init__(stage, message, error_code="TRANSPORT_ERROR")
        self.detail = detail


class ValidationError(GenerationError):
    """The remote call succeeded but returned an unusable payload."""

    def __init__(self, stage: Stage, detail: str) -> None:
        message = f"Failed to communicate with the AI model for {STAGE_LABELS[stage]}"
        super().__init__(stage, message, error_code="VALIDATION_ERROR")
        self.detail = detail


class PreconditionError(StoryCrafterError):
    """A stage was invoked without its required input."""

    def __init__(self, message: str, error_code: str = "PRECONDITION_FAILED") -> None:
        super().__init__(message, error_code=error_code)


class OperationInProgressError(PreconditionError):
    """A generation was requested while another one is still running."""

    def __init__(self) -> None:
        super().__init__(
            "Another generation is already in progress.",
            error_code="OPERATION_IN_PROGRESS",
        )


class ProjectNotFoundError(StoryCrafterError):
    """Raised when a project cannot be found."""

    def __init__(self, project_id: int) -> None:
        super().__init__(f"Project {project_id} not found", error_code="PROJECT_NOT_FOUND")
        self.project_id = project_id


class InvalidTransitionError(StoryCrafterError):
    """Raised when a project status change is not allowed."""

    def __init__(self, project_id: int, current: str, target: str) -> None:
        message = f"Project {project_id} cannot move from '{current}' to '{target}'"
        super().__init__(message, error_code="INVALID_TRANSITION")
        self.project_id = project_id
        self.current = current
        self.target = target


class PersistenceWarning(StoryCrafterError):
    """Raised by storage backends when a read or write fails."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message, error_code="PERSISTENCE_WARNING")
        self.key = key


class SceneNotFoundError(StoryCrafterError):
    """Raised when a scene cannot be found in the working prompts."""

    def __init__(self, scene_number: int) -> None:
        super().__init__(f"Scene {scene_number} not found", error_code="SCENE_NOT_FOUND")
        self.scene_number = scene_number
