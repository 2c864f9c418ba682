"""
Pytest configuration and fixtures for taskkeeper tests.

Provides store and repository fixtures, test data factories, and common
test utilities.
"""

import pytest

from taskkeeper.database import TaskStore
from taskkeeper.models import SubTask, Task
from taskkeeper.services.task_repository import TaskRepository


@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh database file inside the test's temp directory."""
    return tmp_path / "data" / "tasks.db"


@pytest.fixture
def store(db_path):
    """
    Create an opened TaskStore on a temporary database file.

    Yields:
        TaskStore instance

    Example:
        def test_something(store):
            store.insert_task(task)
    """
    task_store = TaskStore(db_path)
    task_store.open()

    yield task_store

    # Cleanup
    task_store.close()


@pytest.fixture
def repository(store):
    """
    Create a TaskRepository backed by the store fixture.

    Yields:
        TaskRepository instance sharing the store fixture's database
    """
    repo = TaskRepository(store)
    yield repo
    repo.close()


@pytest.fixture
def sequential_ids():
    """
    Id factory producing predictable ids: tid1, tid2, stid3, ...

    Returns:
        Callable usable as TaskRepository(id_factory=...)
    """
    counter = {"value": 0}

    def _next_id(prefix: str) -> str:
        counter["value"] += 1
        return f"{prefix}{counter['value']}"
    return _next_id


@pytest.fixture
def make_task():
    """
    Factory fixture for creating Task models.

    Returns:
        Function that creates Task instances

    Example:
        def test_something(make_task):
            task = make_task(title="Custom Task", tags=["a"])
    """
    def _make_task(
        id: str = "tid1",
        title: str = "Test Task",
        description: str = None,
        date_created: float = 1700000000.0,
        is_completed: bool = False,
        tags: list = None,
        priority: int = None,
    ) -> Task:
        return Task(
            id=id,
            title=title,
            description=description,
            date_created=date_created,
            is_completed=is_completed,
            tags=tags or [],
            priority=priority,
        )
    return _make_task


@pytest.fixture
def make_subtask():
    """
    Factory fixture for creating SubTask models.

    Returns:
        Function that creates SubTask instances
    """
    def _make_subtask(
        sub_task_id: str = "stid1",
        parent_task_id: str = "tid1",
        sub_task_title: str = "Test Subtask",
        is_sub_task_completed: bool = False,
    ) -> SubTask:
        return SubTask(
            sub_task_id=sub_task_id,
            parent_task_id=parent_task_id,
            sub_task_title=sub_task_title,
            is_sub_task_completed=is_sub_task_completed,
        )
    return _make_subtask
