"""Canonical collections of projects and saved ideas."""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidTransitionError, PersistenceWarning, ProjectNotFoundError
from .models import (
    DEFAULT_TITLE,
    PROJECTS_ADAPTER,
    SAVED_IDEAS_ADAPTER,
    Project,
    ProjectStatus,
    SavedIdea,
    VideoIdea,
)
from .storage import PROJECTS_KEY, SAVED_IDEAS_KEY, KeyValueStorage

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    (ProjectStatus.WORKING, ProjectStatus.COMPLETED),
    (ProjectStatus.COMPLETED, ProjectStatus.ARCHIVED),
    (ProjectStatus.ARCHIVED, ProjectStatus.COMPLETED),
}

IMMUTABLE_FIELDS = {"id", "created_at"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectStore:
    """Owns projects and saved ideas, writing through to storage on every change."""

    def __init__(
        self,
        storage: KeyValueStorage,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.storage = storage
        self.clock = clock or _utcnow
        self._saved_ideas: list[SavedIdea] = self._load(SAVED_IDEAS_KEY, SAVED_IDEAS_ADAPTER)
        self._projects: list[Project] = self._load(PROJECTS_KEY, PROJECTS_ADAPTER)
        self._last_id = max(
            [p.id for p in self._projects] + [i.id for i in self._saved_ideas],
            default=0,
        )

    # -- persistence ---------------------------------------------------------

    def _load(self, key: str, adapter: TypeAdapter) -> list:
        try:
            raw = self.storage.load(key)
        except PersistenceWarning as e:
            logger.warning("Could not read '%s', starting empty: %s", key, e)
            return []
        if not raw:
            return []
        try:
            return adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                "Stored data under '%s' is corrupt, starting empty (%d errors)",
                key,
                e.error_count(),
            )
            return []

    def _save(self, key: str, payload: bytes) -> None:
        try:
            self.storage.save(key, payload.decode("utf-8"))
        except PersistenceWarning as e:
            logger.warning("Could not persist '%s', keeping in memory only: %s", key, e)

    def _persist_projects(self) -> None:
        self._save(PROJECTS_KEY, PROJECTS_ADAPTER.dump_json(self._projects, by_alias=True))

    def _persist_saved_ideas(self) -> None:
        self._save(SAVED_IDEAS_KEY, SAVED_IDEAS_ADAPTER.dump_json(self._saved_ideas))

    def _next_id(self) -> int:
        candidate = int(self.clock().timestamp() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return self._last_id

    def _index(self, project_id: int) -> int:
        for i, project in enumerate(self._projects):
            if project.id == project_id:
                return i
        raise ProjectNotFoundError(project_id)

    # -- saved ideas ---------------------------------------------------------

    def list_saved_ideas(self) -> list[SavedIdea]:
        return [idea.model_copy() for idea in self._saved_ideas]

    def find_saved_idea(self, text: str) -> SavedIdea | None:
        for idea in self._saved_ideas:
            if idea.text == text:
                return idea.model_copy()
        return None

    def save_idea(self, text: str) -> SavedIdea:
        """Save ``text`` unless an identical idea is already saved."""
        existing = self.find_saved_idea(text)
        if existing is not None:
            return existing
        idea = SavedIdea(id=self._next_id(), text=text)
        self._saved_ideas.append(idea)
        self._persist_saved_ideas()
        return idea.model_copy()

    def save_all_ideas(self, ideas: Iterable[VideoIdea]) -> list[SavedIdea]:
        """Save every idea whose text is not already saved; return the new entries."""
        known = {idea.text for idea in self._saved_ideas}
        added = []
        for idea in ideas:
            if idea.idea in known:
                continue
            known.add(idea.idea)
            added.append(SavedIdea(id=self._next_id(), text=idea.idea))
        if added:
            self._saved_ideas.extend(added)
            self._persist_saved_ideas()
        return [idea.model_copy() for idea in added]

    def delete_idea(self, idea_id: int) -> None:
        remaining = [idea for idea in self._saved_ideas if idea.id != idea_id]
        if len(remaining) == len(self._saved_ideas):
            return
        self._saved_ideas = remaining
        self._persist_saved_ideas()

    # -- projects ------------------------------------------------------------

    def list_projects(self, status: ProjectStatus | None = None) -> list[Project]:
        return [
            p.model_copy(deep=True)
            for p in self._projects
            if status is None or p.status == status
        ]

    def get_project(self, project_id: int) -> Project:
        return self._projects[self._index(project_id)].model_copy(deep=True)

    def create_project(
        self,
        idea_text: str,
        title: str | None = None,
        source_saved_idea_id: int | None = None,
    ) -> Project:
        """Create a working project, consuming the source saved idea if given."""
        project = Project(
            id=self._next_id(),
            title=title or DEFAULT_TITLE,
            idea=idea_text,
            status=ProjectStatus.WORKING,
            created_at=self.clock(),
        )
        self._projects.append(project)
        consumed = False
        if source_saved_idea_id is not None:
            before = len(self._saved_ideas)
            self._saved_ideas = [i for i in self._saved_ideas if i.id != source_saved_idea_id]
            consumed = len(self._saved_ideas) != before

        self._persist_projects()
        if consumed:
            self._persist_saved_ideas()
        logger.info("Created project %d", project.id)
        return project.model_copy(deep=True)

    def update_project(self, project_id: int, **patch) -> Project:
        """Merge ``patch`` into a project.

        Raises:
            ProjectNotFoundError: If no project has ``project_id``.
            InvalidTransitionError: If ``patch`` changes status illegally.
            ValueError: If ``patch`` touches an immutable field.

        """
        forbidden = IMMUTABLE_FIELDS.intersection(patch)
        if forbidden:
            msg = f"Cannot update immutable fields: {', '.join(sorted(forbidden))}"
            raise ValueError(msg)

        index = self._index(project_id)
        current = self._projects[index]
        if "status" in patch:
            target = ProjectStatus(patch["status"])
            if target != current.status and (current.status, target) not in ALLOWED_TRANSITIONS:
                raise InvalidTransitionError(project_id, current.status.value, target.value)

        updated = Project.model_validate({**current.model_dump(), **patch})
        self._projects[index] = updated
        self._persist_projects()
        return updated.model_copy(deep=True)

    def reset_outputs(self, project_id: int) -> Project:
        """Clear generated script, prompts and metadata of a working project."""
        current = self._projects[self._index(project_id)]
        if current.status != ProjectStatus.WORKING:
            raise InvalidTransitionError(project_id, current.status.value, ProjectStatus.WORKING.value)
        return self.update_project(project_id, script="", json_prompts="", metadata=None)

    def archive(self, project_id: int) -> Project:
        return self._transition(project_id, ProjectStatus.COMPLETED, ProjectStatus.ARCHIVED)

    def unarchive(self, project_id: int) -> Project:
        return self._transition(project_id, ProjectStatus.ARCHIVED, ProjectStatus.COMPLETED)

    def _transition(
        self,
        project_id: int,
        source: ProjectStatus,
        target: ProjectStatus,
    ) -> Project:
        current = self._projects[self._index(project_id)]
        if current.status != source:
            raise InvalidTransitionError(project_id, current.status.value, target.value)
        return self.update_project(project_id, status=target)

    def delete_project(self, project_id: int) -> None:
        index = self._index(project_id)
        del self._projects[index]
        self._persist_projects()
        logger.info("Deleted project %d", project_id)
