"""
Pydantic models for taskkeeper.

Defines the task and subtask records held by the repository cache, plus the
options struct used to pass optional task fields to repository operations.
"""

import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskkeeper.utils.tag_utils import normalize_tags


class SubTask(BaseModel):
    """
    Represents a child item scoped to exactly one task.

    Subtasks are persisted in their own table and linked to their parent
    through ``parent_task_id``. Two subtasks are equal when their ids match.
    """

    model_config = ConfigDict(validate_assignment=True)

    sub_task_id: str = Field(..., min_length=1, frozen=True, description="Unique subtask identifier")
    parent_task_id: str = Field(..., min_length=1, frozen=True, description="ID of the owning task")
    sub_task_title: str = Field(..., min_length=1, description="Subtask title")
    is_sub_task_completed: bool = Field(default=False, description="Whether the subtask is completed")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SubTask):
            return NotImplemented
        return self.sub_task_id == other.sub_task_id

    def __hash__(self) -> int:
        return hash(self.sub_task_id)


class Task(BaseModel):
    """
    Represents a top-level to-do item.

    ``id`` and ``date_created`` are assigned once at creation and cannot be
    reassigned. ``sub_tasks`` is the in-memory view of the subtasks whose
    ``parent_task_id`` equals this task's id; it is not stored in the tasks
    table and is excluded from serialization.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., min_length=1, frozen=True, description="Unique task identifier")
    title: str = Field(..., min_length=1, description="Task title")
    description: Optional[str] = Field(default=None, description="Optional task description")
    date_created: float = Field(
        default_factory=time.time,
        frozen=True,
        description="Creation timestamp (epoch seconds)",
    )
    is_completed: bool = Field(default=False, description="Whether the task is completed")
    tags: List[str] = Field(default_factory=list, description="Ordered list of tags")
    priority: Optional[int] = Field(default=None, description="Optional priority")
    sub_tasks: List[SubTask] = Field(default_factory=list, exclude=True, description="Owned subtasks")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Task):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @field_validator("tags")
    @classmethod
    def normalize_tag_list(cls, v: List[str]) -> List[str]:
        """
        Keep tags in the form they read back from storage.

        A lone empty tag becomes an empty list and tags containing commas
        are split, since the tags column cannot represent either.
        """
        return normalize_tags(v)


class TaskOptions(BaseModel):
    """
    Optional task fields accepted by ``add_task`` and ``update_task``.

    Every field has the default an omitted argument takes:

    Attributes:
        description: Task description (default: None)
        is_completed: Completion state (default: False)
        tags: Ordered tags (default: empty list)
        priority: Priority value (default: None)
    """

    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = None
    is_completed: bool = False
    tags: List[str] = Field(default_factory=list)
    priority: Optional[int] = None

    @field_validator("tags")
    @classmethod
    def normalize_tag_list(cls, v: List[str]) -> List[str]:
        return normalize_tags(v)
