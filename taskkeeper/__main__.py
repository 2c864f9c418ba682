"""Entry point for taskkeeper.

This module allows running taskkeeper as a module:
    python -m taskkeeper

Or as an installed command:
    taskkeeper

It opens the configured database and prints the stored tasks with their
subtasks.
"""

import sys
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from taskkeeper.config import Config
from taskkeeper.logging_config import setup_logging, get_logger
from taskkeeper.models import Task

# Initialize logger for this module
logger = get_logger(__name__)


def build_task_table(tasks: List[Task]) -> Table:
    """Build a rich table listing tasks and their subtasks.

    Args:
        tasks: Tasks to render, with their sub_tasks populated

    Returns:
        Table with one row per task followed by one row per subtask
    """
    table = Table(title="Tasks")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Done", justify="center")
    table.add_column("Tags")
    table.add_column("Priority", justify="right")

    for task in tasks:
        table.add_row(
            task.id,
            task.title,
            "x" if task.is_completed else "",
            ", ".join(task.tags),
            "" if task.priority is None else str(task.priority),
        )
        for sub_task in task.sub_tasks:
            table.add_row(
                sub_task.sub_task_id,
                f"  - {sub_task.sub_task_title}",
                "x" if sub_task.is_sub_task_completed else "",
                "",
                "",
            )

    return table


def main(args: Optional[list[str]] = None) -> int:
    """Main entry point for taskkeeper.

    Args:
        args: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if args is None:
        args = sys.argv[1:]

    config = Config()
    logging_config = config.get_logging_config()

    # Initialize logging before any other operations
    setup_logging(log_level=logging_config['level'], console=logging_config['console'])

    # Import here to keep startup light when only logging is needed
    from taskkeeper.services.task_repository import TaskRepository, TaskRepositoryError

    db_path = config.get_storage_config()['db_path']
    console = Console()

    try:
        repository = TaskRepository.open(db_path)
    except TaskRepositoryError as e:
        logger.error("Could not open task database", exc_info=True)
        console.print(f"Could not open task database at {db_path}: {e}", style="red", markup=False)
        return 1

    try:
        tasks = repository.get_all_tasks()
        if tasks:
            console.print(build_task_table(tasks))
        else:
            console.print(f"No tasks in {db_path}", markup=False)
        logger.info("taskkeeper exited normally")
        return 0
    except TaskRepositoryError as e:
        logger.error("Error reading tasks", exc_info=True)
        console.print(f"Error reading tasks: {e}", style="red", markup=False)
        return 1
    finally:
        repository.close()


if __name__ == "__main__":
    sys.exit(main())
