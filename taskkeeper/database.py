"""
Database layer for taskkeeper.

Provides SQLAlchemy ORM models for the ``tasks`` and ``subtasks`` tables,
engine/session management, and the TaskStore used by the repository for
create/read/update/delete by primary key and filtered scans.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy import Boolean, Float, Integer, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from taskkeeper.logging_config import get_logger
from taskkeeper.models import SubTask, Task
from taskkeeper.utils.tag_utils import string_to_tags, tags_to_string

logger = get_logger(__name__)

IN_MEMORY_PATH = ":memory:"


class StoreError(Exception):
    """Base exception for persistent store errors."""
    pass


class DuplicateKeyError(StoreError):
    """Raised when inserting a row whose primary key already exists."""
    pass


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class TaskORM(Base):
    """
    SQLAlchemy ORM model for tasks.

    Column names follow the persisted schema; tags are stored as a
    comma-joined string.
    """
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column("descriptionTask", Text, nullable=True)
    date_created: Mapped[float] = mapped_column("dateCreated", Float)
    is_completed: Mapped[bool] = mapped_column("isCompleted", Boolean, default=False)
    tags: Mapped[str] = mapped_column(Text, default="")
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<TaskORM(id={self.id}, title={self.title})>"


class SubTaskORM(Base):
    """
    SQLAlchemy ORM model for subtasks.

    ``parentTaskID`` is not a foreign key; the repository checks the parent
    exists before inserting.
    """
    __tablename__ = "subtasks"

    sub_task_id: Mapped[str] = mapped_column("subTaskID", Text, primary_key=True)
    parent_task_id: Mapped[str] = mapped_column("parentTaskID", Text)
    sub_task_title: Mapped[str] = mapped_column("subTaskTitle", Text)
    is_sub_task_completed: Mapped[bool] = mapped_column("isSubTaskCompleted", Boolean, default=False)

    def __repr__(self) -> str:
        return f"<SubTaskORM(id={self.sub_task_id}, parent={self.parent_task_id})>"


class TaskStore:
    """
    Embedded SQLite store for tasks and subtasks.

    Every public method runs in its own session and commits before
    returning. Reads return Pydantic models; the ORM rows never leave
    this module.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the store for a database file.

        Args:
            path: Database file path, or ":memory:" for an in-memory database
        """
        self.path = str(path)
        self.engine: Optional[Engine] = None
        self.session_maker: Optional[sessionmaker[Session]] = None

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.path}"

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def open(self) -> None:
        """
        Create the engine and both tables if they do not exist.

        Safe to call on every process start.

        Raises:
            StoreError: If the file cannot be created or is not a database
        """
        try:
            logger.info(f"Opening task store: {self.database_url}")
            if self.path != IN_MEMORY_PATH:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)

            if self.engine is None:
                self.engine = create_engine(self.database_url, echo=False)
                self.session_maker = sessionmaker(self.engine, expire_on_commit=False)

            Base.metadata.create_all(self.engine)

            logger.info("Task store opened successfully")
        except (OSError, SQLAlchemyError) as e:
            logger.error(f"Failed to open task store at {self.path}: {e}", exc_info=True)
            self._dispose()
            raise StoreError(f"Cannot open task store at {self.path}: {e}") from e

    def close(self) -> None:
        """
        Close the database engine and cleanup resources.
        """
        if self.engine:
            logger.info("Closing task store")
            self._dispose()

    def _dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.session_maker = None

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """
        Get a database session with automatic transaction management.

        Yields:
            Session for database operations

        Raises:
            StoreError: If the store is not open

        Example:
            with store.get_session() as session:
                rows = session.scalars(select(TaskORM)).all()
        """
        if not self.session_maker:
            raise StoreError("TaskStore not open. Call open() first.")

        with self.session_maker() as session:
            try:
                yield session
                session.commit()
            except Exception as e:
                logger.error(f"Database session error, rolling back: {e}")
                session.rollback()
                raise

    # ==============================================================================
    # CONVERSION HELPERS
    # ==============================================================================

    @staticmethod
    def _task_to_orm(task: Task) -> TaskORM:
        return TaskORM(
            id=task.id,
            title=task.title,
            description=task.description,
            date_created=task.date_created,
            is_completed=task.is_completed,
            tags=tags_to_string(task.tags),
            priority=task.priority,
        )

    @staticmethod
    def _orm_to_task(task_orm: TaskORM) -> Task:
        return Task.model_validate(
            {
                "id": task_orm.id,
                "title": task_orm.title,
                "description": task_orm.description,
                "date_created": task_orm.date_created,
                "is_completed": bool(task_orm.is_completed),
                "tags": string_to_tags(task_orm.tags),
                "priority": task_orm.priority,
            }
        )

    @staticmethod
    def _subtask_to_orm(sub_task: SubTask) -> SubTaskORM:
        return SubTaskORM(
            sub_task_id=sub_task.sub_task_id,
            parent_task_id=sub_task.parent_task_id,
            sub_task_title=sub_task.sub_task_title,
            is_sub_task_completed=sub_task.is_sub_task_completed,
        )

    @staticmethod
    def _orm_to_subtask(sub_task_orm: SubTaskORM) -> SubTask:
        return SubTask.model_validate(
            {
                "sub_task_id": sub_task_orm.sub_task_id,
                "parent_task_id": sub_task_orm.parent_task_id,
                "sub_task_title": sub_task_orm.sub_task_title,
                "is_sub_task_completed": bool(sub_task_orm.is_sub_task_completed),
            }
        )

    def _insert(self, row: Base, key: str) -> bool:
        try:
            with self.get_session() as session:
                session.add(row)
                session.flush()
        except IntegrityError as e:
            raise DuplicateKeyError(f"Row with key {key} already exists in {row.__tablename__}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert {key} into {row.__tablename__}: {e}") from e
        return True

    # ==============================================================================
    # TASK OPERATIONS
    # ==============================================================================

    def insert_task(self, task: Task) -> bool:
        """
        Insert a new task row.

        Args:
            task: Task to persist

        Returns:
            True once the row is committed

        Raises:
            DuplicateKeyError: If a task with the same id already exists
            StoreError: On any other database failure
        """
        result = self._insert(self._task_to_orm(task), task.id)
        logger.debug(f"Inserted task row: id={task.id}")
        return result

    def update_task(self, task: Task) -> bool:
        """
        Replace all mutable columns of an existing task row.

        Args:
            task: Task carrying the new values

        Returns:
            True if the row was updated, False if no row has this id

        Raises:
            StoreError: On database failure
        """
        try:
            with self.get_session() as session:
                task_orm = session.get(TaskORM, task.id)
                if task_orm is None:
                    logger.warning(f"No task row to update: id={task.id}")
                    return False

                task_orm.title = task.title
                task_orm.description = task.description
                task_orm.is_completed = task.is_completed
                task_orm.tags = tags_to_string(task.tags)
                task_orm.priority = task.priority
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update task {task.id}: {e}") from e

        logger.debug(f"Updated task row: id={task.id}")
        return True

    def delete_task(self, task_id: str) -> bool:
        """
        Delete a task row.

        Args:
            task_id: Id of the task to delete

        Returns:
            True if a row was deleted, False if no row has this id

        Raises:
            StoreError: On database failure
        """
        try:
            with self.get_session() as session:
                task_orm = session.get(TaskORM, task_id)
                if task_orm is None:
                    logger.debug(f"No task row to delete: id={task_id}")
                    return False
                session.delete(task_orm)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete task {task_id}: {e}") from e

        logger.debug(f"Deleted task row: id={task_id}")
        return True

    def get_task(self, task_id: str) -> Optional[Task]:
        """
        Read a single task by id.

        Returns:
            Task or None if no row has this id
        """
        try:
            with self.get_session() as session:
                task_orm = session.get(TaskORM, task_id)
                return self._orm_to_task(task_orm) if task_orm else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read task {task_id}: {e}") from e
        except ValidationError as e:
            raise StoreError(f"Malformed task row {task_id}: {e}") from e

    def scan_tasks(self) -> List[Task]:
        """
        Read every task row in storage order.

        Returns:
            List of tasks, empty if the table is empty
        """
        try:
            with self.get_session() as session:
                task_orms = session.scalars(select(TaskORM)).all()
                return [self._orm_to_task(task_orm) for task_orm in task_orms]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to scan tasks: {e}") from e
        except ValidationError as e:
            raise StoreError(f"Malformed task row in store: {e}") from e

    def count_tasks(self) -> int:
        try:
            with self.get_session() as session:
                return session.scalar(select(func.count()).select_from(TaskORM)) or 0
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count tasks: {e}") from e

    # ==============================================================================
    # SUBTASK OPERATIONS
    # ==============================================================================

    def insert_subtask(self, sub_task: SubTask) -> bool:
        """
        Insert a new subtask row.

        Raises:
            DuplicateKeyError: If a subtask with the same id already exists
            StoreError: On any other database failure
        """
        result = self._insert(self._subtask_to_orm(sub_task), sub_task.sub_task_id)
        logger.debug(
            f"Inserted subtask row: id={sub_task.sub_task_id}, parent={sub_task.parent_task_id}"
        )
        return result

    def update_subtask(self, sub_task: SubTask) -> bool:
        """
        Replace the mutable columns of an existing subtask row.

        Returns:
            True if the row was updated, False if no row has this id
        """
        try:
            with self.get_session() as session:
                sub_task_orm = session.get(SubTaskORM, sub_task.sub_task_id)
                if sub_task_orm is None:
                    logger.warning(f"No subtask row to update: id={sub_task.sub_task_id}")
                    return False

                sub_task_orm.sub_task_title = sub_task.sub_task_title
                sub_task_orm.is_sub_task_completed = sub_task.is_sub_task_completed
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update subtask {sub_task.sub_task_id}: {e}") from e

        logger.debug(f"Updated subtask row: id={sub_task.sub_task_id}")
        return True

    def delete_subtask(self, sub_task_id: str) -> bool:
        """
        Delete a subtask row.

        Returns:
            True if a row was deleted, False if no row has this id
        """
        try:
            with self.get_session() as session:
                sub_task_orm = session.get(SubTaskORM, sub_task_id)
                if sub_task_orm is None:
                    logger.debug(f"No subtask row to delete: id={sub_task_id}")
                    return False
                session.delete(sub_task_orm)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete subtask {sub_task_id}: {e}") from e

        logger.debug(f"Deleted subtask row: id={sub_task_id}")
        return True

    def get_subtask(self, sub_task_id: str) -> Optional[SubTask]:
        try:
            with self.get_session() as session:
                sub_task_orm = session.get(SubTaskORM, sub_task_id)
                return self._orm_to_subtask(sub_task_orm) if sub_task_orm else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read subtask {sub_task_id}: {e}") from e
        except ValidationError as e:
            raise StoreError(f"Malformed subtask row {sub_task_id}: {e}") from e

    def scan_subtasks(self) -> List[SubTask]:
        """
        Read every subtask row in storage order.

        Returns:
            List of subtasks, empty if the table is empty
        """
        try:
            with self.get_session() as session:
                sub_task_orms = session.scalars(select(SubTaskORM)).all()
                return [self._orm_to_subtask(row) for row in sub_task_orms]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to scan subtasks: {e}") from e
        except ValidationError as e:
            raise StoreError(f"Malformed subtask row in store: {e}") from e

    def scan_subtasks_by_parent(self, parent_task_id: str) -> List[SubTask]:
        """
        Read the subtask rows belonging to one task, in storage order.

        Args:
            parent_task_id: Id of the parent task

        Returns:
            List of subtasks, empty if none match
        """
        try:
            with self.get_session() as session:
                sub_task_orms = session.scalars(
                    select(SubTaskORM).where(SubTaskORM.parent_task_id == parent_task_id)
                ).all()
                return [self._orm_to_subtask(row) for row in sub_task_orms]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to scan subtasks of {parent_task_id}: {e}") from e
        except ValidationError as e:
            raise StoreError(f"Malformed subtask row in store: {e}") from e

    def count_subtasks(self) -> int:
        try:
            with self.get_session() as session:
                return session.scalar(select(func.count()).select_from(SubTaskORM)) or 0
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count subtasks: {e}") from e
