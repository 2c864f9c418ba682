"""
Tests for the taskkeeper entry point.

Tests cover exit codes, table rendering and database selection via
environment configuration.
"""

import logging

import pytest
from rich.console import Console

from taskkeeper import __main__ as entry_point
from taskkeeper.models import SubTask, Task
from taskkeeper.services.task_repository import TaskRepository


@pytest.fixture
def app_env(tmp_path, monkeypatch):
    """Isolate config, logs and database for the entry point."""
    db_path = tmp_path / "db" / "tasks.db"
    log_dir = tmp_path / "logs"

    monkeypatch.setenv("TASKKEEPER_DB_PATH", str(db_path))
    monkeypatch.delenv("TASKKEEPER_LOG_LEVEL", raising=False)
    monkeypatch.delenv("TASKKEEPER_LOG_CONSOLE", raising=False)
    monkeypatch.setattr("taskkeeper.config.Config._default_config_path",
                        lambda self: tmp_path / "config.ini")
    monkeypatch.setattr("taskkeeper.logging_config.LOG_DIR", log_dir)
    monkeypatch.setattr("taskkeeper.logging_config.LOG_FILE", log_dir / "taskkeeper.log")

    yield db_path

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)


class TestMain:
    """Tests for main()."""

    def test_empty_database(self, app_env, capsys):
        """Test an empty database prints a notice and exits 0."""
        assert entry_point.main([]) == 0

        assert "No tasks" in capsys.readouterr().out
        assert app_env.exists()

    def test_lists_tasks(self, app_env, capsys):
        """Test stored tasks and subtasks are printed."""
        repo = TaskRepository.open(app_env)
        task = repo.add_task("Water plants", tags=["home"])
        repo.add_subtask(task.id, "Balcony")
        repo.close()

        assert entry_point.main([]) == 0

        out = capsys.readouterr().out
        assert "Water plants" in out
        assert "Balcony" in out

    def test_unopenable_database_exits_1(self, app_env, capsys):
        """Test a corrupt database file gives exit code 1."""
        app_env.parent.mkdir(parents=True)
        app_env.write_bytes(b"garbage" * 500)

        assert entry_point.main([]) == 1

        assert "Could not open task database" in capsys.readouterr().out


class TestBuildTaskTable:
    """Tests for build_task_table()."""

    def test_rows_for_tasks_and_subtasks(self):
        """Test one row per task plus one per subtask."""
        task = Task(id="tid1", title="Parent", tags=["a", "b"], priority=2, is_completed=True)
        task.sub_tasks.append(SubTask(sub_task_id="stid1", parent_task_id="tid1",
                                      sub_task_title="Child"))

        table = entry_point.build_task_table([task, Task(id="tid2", title="Other")])

        assert table.row_count == 3

        console = Console(width=120, record=True)
        console.print(table)
        text = console.export_text()
        assert "Parent" in text
        assert "- Child" in text
        assert "a, b" in text
