"""
Task repository for taskkeeper.

Owns the authoritative in-memory list of tasks and subtasks, writes every
mutation through to the TaskStore, and republishes the resulting lists to
subscribers. Store writes happen before the cache is touched, so a failed
write never leaves the cache ahead of what is on disk.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from taskkeeper.database import DuplicateKeyError, StoreError, TaskStore
from taskkeeper.logging_config import get_logger
from taskkeeper.models import SubTask, Task, TaskOptions
from taskkeeper.services.notification_channel import CurrentValueChannel
from taskkeeper.utils.id_utils import SUB_TASK_ID_PREFIX, TASK_ID_PREFIX, generate_unique_id

logger = get_logger(__name__)

MAX_ID_ATTEMPTS = 100

TaskRef = Union[Task, str]
SubTaskRef = Union[SubTask, str]


class TaskRepositoryError(Exception):
    """Base exception for task repository errors."""
    pass


class StoreInitializationError(TaskRepositoryError):
    """Raised when the backing store cannot be opened."""
    pass


class PersistenceError(TaskRepositoryError):
    """Raised when a store read or write fails; the cache is left as it was."""
    pass


class DuplicateTaskError(PersistenceError):
    """Raised when a new task or subtask id is already taken."""
    pass


class TaskRepository:
    """
    Write-through cache of tasks and subtasks with change broadcast.

    One instance per database file, created and owned by the host
    application. Not thread-safe: callers must serialize access.
    """

    def __init__(
        self,
        store: TaskStore,
        id_factory: Callable[[str], str] = generate_unique_id,
    ) -> None:
        """
        Initialize the repository and open its store if needed.

        Args:
            store: TaskStore backing this repository
            id_factory: Callable taking an id prefix and returning a new id

        Raises:
            StoreInitializationError: If the store cannot be opened
        """
        self.store = store
        self.id_factory = id_factory

        self._tasks: List[Task] = []
        self._sub_tasks: List[SubTask] = []
        self._tasks_loaded = False
        self._sub_tasks_loaded = False
        self._tasks_channel: CurrentValueChannel[Task] = CurrentValueChannel("tasks")
        self._sub_tasks_channel: CurrentValueChannel[SubTask] = CurrentValueChannel("subtasks")

        if not store.is_open:
            try:
                store.open()
            except StoreError as e:
                logger.error(f"Task repository unusable, store failed to open: {e}")
                raise StoreInitializationError(str(e)) from e

    @classmethod
    def open(cls, db_path: Union[str, Path], **kwargs: Any) -> "TaskRepository":
        """
        Create a repository backed by a new store at ``db_path``.

        Args:
            db_path: Database file path
            **kwargs: Passed through to the constructor

        Returns:
            Ready-to-use TaskRepository
        """
        return cls(TaskStore(db_path), **kwargs)

    def close(self) -> None:
        """Close the backing store."""
        self.store.close()

    # ==============================================================================
    # CACHE HELPERS
    # ==============================================================================

    def _ensure_loaded(self) -> None:
        """
        Hydrate each cache list from the store the first time it is needed.

        Once a list has been loaded it is authoritative and is not scanned
        again until reload(). A load that finds rows broadcasts that list.
        """
        try:
            tasks = self._tasks if self._tasks_loaded else self.store.scan_tasks()
            sub_tasks = self._sub_tasks if self._sub_tasks_loaded else self.store.scan_subtasks()
        except StoreError as e:
            logger.error(f"Failed to load tasks from store: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load tasks from store: {e}") from e

        tasks_loaded = not self._tasks_loaded and bool(tasks)
        sub_tasks_loaded = not self._sub_tasks_loaded and bool(sub_tasks)
        self._tasks = tasks
        self._sub_tasks = sub_tasks
        self._tasks_loaded = True
        self._sub_tasks_loaded = True

        if tasks_loaded or sub_tasks_loaded:
            self._attach_sub_tasks()
            logger.info(
                f"Loaded cache from store: tasks={len(self._tasks)}, "
                f"subtasks={len(self._sub_tasks)}"
            )
        if tasks_loaded:
            self._publish_tasks()
        if sub_tasks_loaded:
            self._publish_sub_tasks()

    def _attach_sub_tasks(self) -> None:
        """Rebuild every task's sub_tasks relation from the subtask cache."""
        by_parent: Dict[str, List[SubTask]] = {}
        for sub_task in self._sub_tasks:
            by_parent.setdefault(sub_task.parent_task_id, []).append(sub_task)

        for task in self._tasks:
            task.sub_tasks.clear()
            task.sub_tasks.extend(by_parent.get(task.id, []))

    def _find_task(self, task_id: str) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def _find_sub_task(self, sub_task_id: str) -> Optional[SubTask]:
        for sub_task in self._sub_tasks:
            if sub_task.sub_task_id == sub_task_id:
                return sub_task
        return None

    def _publish_tasks(self) -> None:
        self._tasks_channel.send(self._tasks)

    def _publish_sub_tasks(self) -> None:
        self._sub_tasks_channel.send(self._sub_tasks)

    def _new_id(self, prefix: str, taken: set) -> str:
        """
        Draw ids from the factory until one is not already in use.

        Raises:
            DuplicateTaskError: If no free id was produced
        """
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self.id_factory(prefix)
            if candidate not in taken:
                return candidate
            logger.debug(f"Generated id {candidate} already in use, drawing another")

        logger.error(f"Could not generate a free id after {MAX_ID_ATTEMPTS} attempts")
        raise DuplicateTaskError(f"Could not generate a free id with prefix '{prefix}'")

    @staticmethod
    def _resolve_options(options: Optional[TaskOptions], fields: Dict[str, Any]) -> TaskOptions:
        if options is None:
            return TaskOptions(**fields)
        if fields:
            return TaskOptions(**{**options.model_dump(), **fields})
        return options

    # ==============================================================================
    # TASK OPERATIONS
    # ==============================================================================

    def add_task(
        self,
        title: str,
        options: Optional[TaskOptions] = None,
        **fields: Any,
    ) -> Task:
        """
        Create a task, persist it, and broadcast the new task list.

        Args:
            title: Task title
            options: Optional task fields; see TaskOptions for defaults
            **fields: TaskOptions fields given as keywords (override ``options``)

        Returns:
            The created Task, as held in the cache

        Raises:
            pydantic.ValidationError: If the title or options are invalid
            DuplicateTaskError: If the generated id already exists in the store
            PersistenceError: If the store write fails (cache unchanged)
        """
        options = self._resolve_options(options, fields)
        self._ensure_loaded()

        task = Task(
            id=self._new_id(TASK_ID_PREFIX, {t.id for t in self._tasks}),
            title=title,
            description=options.description,
            is_completed=options.is_completed,
            tags=options.tags,
            priority=options.priority,
        )

        try:
            self.store.insert_task(task)
        except DuplicateKeyError as e:
            logger.error(f"Failed to add task - id already stored: {e}", exc_info=True)
            raise DuplicateTaskError(str(e)) from e
        except StoreError as e:
            logger.error(f"Failed to add task '{title}': {e}", exc_info=True)
            raise PersistenceError(f"Failed to add task '{title}': {e}") from e

        self._tasks.append(task)
        logger.info(f"Added task: id={task.id}, title='{task.title}'")
        self._publish_tasks()
        return task

    def update_task(
        self,
        task_id: str,
        new_title: str,
        options: Optional[TaskOptions] = None,
        **fields: Any,
    ) -> Optional[Task]:
        """
        Replace a task's mutable fields.

        Fields not given take their TaskOptions defaults, so an update is a
        full replace rather than a patch.

        Args:
            task_id: Id of the task to update
            new_title: New title
            options: Optional task fields; see TaskOptions for defaults
            **fields: TaskOptions fields given as keywords

        Returns:
            The updated Task, or None if no task has this id

        Raises:
            pydantic.ValidationError: If the new values are invalid
            PersistenceError: If the store write fails (cache unchanged)
        """
        options = self._resolve_options(options, fields)
        self._ensure_loaded()

        task = self._find_task(task_id)
        if task is None:
            logger.warning(f"Cannot update task - not found: id={task_id}")
            return None

        updated = Task.model_validate(
            {
                **task.model_dump(),
                "title": new_title,
                "description": options.description,
                "is_completed": options.is_completed,
                "tags": options.tags,
                "priority": options.priority,
            }
        )

        try:
            stored = self.store.update_task(updated)
        except StoreError as e:
            logger.error(f"Failed to update task {task_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update task {task_id}: {e}") from e

        if not stored:
            logger.error(f"Task {task_id} is cached but missing from the store")
            raise PersistenceError(f"Task {task_id} is missing from the store")

        task.title = updated.title
        task.description = updated.description
        task.is_completed = updated.is_completed
        task.tags = updated.tags
        task.priority = updated.priority

        logger.info(f"Updated task: id={task_id}, title='{task.title}'")
        self._publish_tasks()
        return task

    def remove_task(self, task: TaskRef) -> bool:
        """
        Delete a task from the store and the cache.

        Subtasks of the task are left in place.

        Args:
            task: Task or task id

        Returns:
            True if the task was removed, False if it was not cached

        Raises:
            PersistenceError: If the store delete fails (cache unchanged)
        """
        task_id = task.id if isinstance(task, Task) else task
        self._ensure_loaded()

        cached = self._find_task(task_id)
        if cached is None:
            logger.debug(f"Remove skipped - task not cached: id={task_id}")
            return False

        try:
            deleted = self.store.delete_task(task_id)
        except StoreError as e:
            logger.error(f"Failed to remove task {task_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to remove task {task_id}: {e}") from e

        if not deleted:
            logger.warning(f"Task {task_id} was already absent from the store")

        self._tasks.remove(cached)
        logger.info(f"Removed task: id={task_id}, title='{cached.title}'")
        self._publish_tasks()
        return True

    def get_all_tasks(self) -> List[Task]:
        """
        Get every task, loading from the store if the cache is empty.

        Returns:
            Snapshot list of cached tasks
        """
        self._ensure_loaded()
        return list(self._tasks)

    def get_tasks_count(self) -> int:
        self._ensure_loaded()
        return len(self._tasks)

    def get_task(self, task_id: str) -> Optional[Task]:
        """
        Get a task by its id.

        Returns:
            Task or None if not found
        """
        self._ensure_loaded()
        return self._find_task(task_id)

    def get_task_titles(self) -> List[str]:
        self._ensure_loaded()
        return [task.title for task in self._tasks]

    # ==============================================================================
    # SUBTASK OPERATIONS
    # ==============================================================================

    def add_subtask(
        self,
        parent_task_id: str,
        sub_task_title: str,
        sub_task_id: Optional[str] = None,
    ) -> Optional[SubTask]:
        """
        Create a subtask under an existing task.

        Args:
            parent_task_id: Id of the parent task
            sub_task_title: Subtask title
            sub_task_id: Optional caller-chosen id (generated if omitted)

        Returns:
            The created SubTask, or None if the parent task does not exist

        Raises:
            pydantic.ValidationError: If the title is invalid
            DuplicateTaskError: If ``sub_task_id`` is already in use
            PersistenceError: If the store write fails (cache unchanged)
        """
        self._ensure_loaded()

        parent = self._find_task(parent_task_id)
        if parent is None:
            logger.warning(f"Cannot add subtask - parent task not found: id={parent_task_id}")
            return None

        taken = {s.sub_task_id for s in self._sub_tasks}
        if sub_task_id is None:
            sub_task_id = self._new_id(SUB_TASK_ID_PREFIX, taken)
        elif sub_task_id in taken:
            logger.error(f"Cannot add subtask - id already in use: {sub_task_id}")
            raise DuplicateTaskError(f"Subtask id {sub_task_id} already exists")

        sub_task = SubTask(
            sub_task_id=sub_task_id,
            parent_task_id=parent_task_id,
            sub_task_title=sub_task_title,
        )

        try:
            self.store.insert_subtask(sub_task)
        except DuplicateKeyError as e:
            logger.error(f"Failed to add subtask - id already stored: {e}", exc_info=True)
            raise DuplicateTaskError(str(e)) from e
        except StoreError as e:
            logger.error(f"Failed to add subtask to {parent_task_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add subtask to {parent_task_id}: {e}") from e

        self._sub_tasks.append(sub_task)
        parent.sub_tasks.append(sub_task)
        logger.info(
            f"Added subtask: id={sub_task.sub_task_id}, parent={parent_task_id}, "
            f"title='{sub_task.sub_task_title}'"
        )
        self._publish_sub_tasks()
        return sub_task

    def update_subtask(
        self,
        sub_task: SubTaskRef,
        new_title: Optional[str] = None,
        is_completed: bool = False,
    ) -> Optional[SubTask]:
        """
        Update a subtask's title and completion state.

        Args:
            sub_task: SubTask or subtask id
            new_title: New title (None keeps the current title)
            is_completed: New completion state

        Returns:
            The updated SubTask, or None if no subtask has this id

        Raises:
            PersistenceError: If the store write fails (cache unchanged)
        """
        sub_task_id = sub_task.sub_task_id if isinstance(sub_task, SubTask) else sub_task
        self._ensure_loaded()

        cached = self._find_sub_task(sub_task_id)
        if cached is None:
            logger.warning(f"Cannot update subtask - not found: id={sub_task_id}")
            return None

        updated = SubTask.model_validate(
            {
                **cached.model_dump(),
                "sub_task_title": new_title if new_title is not None else cached.sub_task_title,
                "is_sub_task_completed": is_completed,
            }
        )

        try:
            stored = self.store.update_subtask(updated)
        except StoreError as e:
            logger.error(f"Failed to update subtask {sub_task_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update subtask {sub_task_id}: {e}") from e

        if not stored:
            logger.error(f"Subtask {sub_task_id} is cached but missing from the store")
            raise PersistenceError(f"Subtask {sub_task_id} is missing from the store")

        cached.sub_task_title = updated.sub_task_title
        cached.is_sub_task_completed = updated.is_sub_task_completed

        logger.info(f"Updated subtask: id={sub_task_id}, completed={cached.is_sub_task_completed}")
        self._publish_sub_tasks()
        return cached

    def delete_subtask(self, sub_task: SubTaskRef) -> bool:
        """
        Delete a subtask from the store, the cache and its parent.

        Args:
            sub_task: SubTask or subtask id

        Returns:
            True if the subtask was removed, False if it was not cached

        Raises:
            PersistenceError: If the store delete fails (cache unchanged)
        """
        sub_task_id = sub_task.sub_task_id if isinstance(sub_task, SubTask) else sub_task
        self._ensure_loaded()

        cached = self._find_sub_task(sub_task_id)
        if cached is None:
            logger.debug(f"Delete skipped - subtask not cached: id={sub_task_id}")
            return False

        try:
            deleted = self.store.delete_subtask(sub_task_id)
        except StoreError as e:
            logger.error(f"Failed to delete subtask {sub_task_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete subtask {sub_task_id}: {e}") from e

        if not deleted:
            logger.warning(f"Subtask {sub_task_id} was already absent from the store")

        self._sub_tasks.remove(cached)
        parent = self._find_task(cached.parent_task_id)
        if parent is not None and cached in parent.sub_tasks:
            parent.sub_tasks.remove(cached)

        logger.info(f"Deleted subtask: id={sub_task_id}, parent={cached.parent_task_id}")
        self._publish_sub_tasks()
        return True

    def get_sub_tasks_of_task(self, parent_task_id: str) -> List[SubTask]:
        """
        Get the subtasks of a task.

        An unknown task and a task without subtasks both give an empty
        list; use get_task() to tell them apart.

        Args:
            parent_task_id: Id of the parent task

        Returns:
            Subtasks in cache order
        """
        self._ensure_loaded()
        return [s for s in self._sub_tasks if s.parent_task_id == parent_task_id]

    def get_all_sub_tasks(self) -> List[SubTask]:
        self._ensure_loaded()
        return list(self._sub_tasks)

    # ==============================================================================
    # SUBSCRIPTIONS
    # ==============================================================================

    def subscribe(self, handler: Callable[[List[Task]], None]) -> None:
        """
        Receive the full task list now and after every task change.

        Args:
            handler: Called synchronously with a list of tasks. It must not
                modify tasks through this repository.
        """
        self._ensure_loaded()
        self._tasks_channel.subscribe(handler)

    def subscribe_to_subtask_changes(self, handler: Callable[[List[SubTask]], None]) -> None:
        """
        Receive the full subtask list now and after every subtask change.

        Args:
            handler: Called synchronously with a list of subtasks
        """
        self._ensure_loaded()
        self._sub_tasks_channel.subscribe(handler)

    # ==============================================================================
    # RECOVERY
    # ==============================================================================

    def reload(self) -> None:
        """
        Discard the cache and reload both lists from the store.

        Use after a PersistenceError when the cache must match the store
        exactly. Both lists are broadcast, even if unchanged.

        Raises:
            PersistenceError: If the store cannot be read
        """
        try:
            tasks = self.store.scan_tasks()
            sub_tasks = self.store.scan_subtasks()
        except StoreError as e:
            logger.error(f"Failed to reload from store: {e}", exc_info=True)
            raise PersistenceError(f"Failed to reload from store: {e}") from e

        self._tasks = tasks
        self._sub_tasks = sub_tasks
        self._tasks_loaded = True
        self._sub_tasks_loaded = True
        self._attach_sub_tasks()

        logger.info(f"Reloaded cache: tasks={len(self._tasks)}, subtasks={len(self._sub_tasks)}")
        self._publish_tasks()
        self._publish_sub_tasks()
