"""Tests for the task-mirror command-line interface."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from task_mirror.cli import (
    _edit_payloads,
    build_manager,
    build_parser,
    check_connection,
    execute,
    load_settings,
    run,
)
from task_mirror.config_schema import build_config
from task_mirror.errors import PermanentRemoteError
from task_mirror.sync.engine import SyncManager
from task_mirror.sync.models import CheckboxPayload, DueDatePayload, TitlePayload
from task_mirror.sync.resolver import RemoteWinsPolicy

from conftest import DONE


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("NOTION_TOKEN", "TASK_MIRROR_API_URL", "TASK_MIRROR_STORAGE_DIR"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
async def manager(blob_store, fake_applier, task1, task2):
    manager = SyncManager(blob_store, fake_applier)
    await manager.load()
    await manager.cache.set_tasks([task1, task2])
    return manager


def _args(*argv):
    return build_parser().parse_args(list(argv))


class TestParser:
    def test_edit_options(self):
        args = _args("edit", "task-1", "--title", "New", "--done", "--due-date", "")
        payloads = _edit_payloads(args)
        assert payloads == [
            TitlePayload(new_title="New"),
            CheckboxPayload(checked=True),
            DueDatePayload(date=None),
        ]

    def test_done_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            _args("edit", "task-1", "--done", "--not-done")

    def test_resolve_choices(self):
        with pytest.raises(SystemExit):
            _args("resolve", "conflict-1", "auto_resolved")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            _args()


class TestWiring:
    def test_load_settings_uses_yaml_fallbacks(self, tmp_path):
        unified = build_config(
            {"notion": {"token": "secret_yaml", "storage_dir": str(tmp_path)}}
        )
        config = load_settings(unified, {"url": "https://api.example.com"})
        assert config.api_token == "secret_yaml"
        assert config.api_url == "https://api.example.com"
        assert config.storage_dir == str(tmp_path)

    def test_build_manager_requires_mapping(self, mock_config):
        with pytest.raises(ValueError, match="field_mapping"):
            build_manager(build_config({}), mock_config)

    def test_build_manager(self, mock_config):
        unified = build_config(
            {
                "sync": {
                    "conflict_strategy": "remote-wins",
                    "max_retries": 3,
                    "preserve_baseline": False,
                    "database_id": "db-1",
                    "field_mapping": {"task_name": "title", "status": "st"},
                }
            }
        )

        manager = build_manager(unified, mock_config)

        assert isinstance(manager.policy, RemoteWinsPolicy)
        assert manager.retry_policy.max_retries == 3
        assert manager.applier.database_id == "db-1"
        assert Path(manager.cache._store.root_dir) == Path(mock_config.storage_dir)


class TestExecute:
    async def test_status(self, manager, capsys):
        assert await execute(manager, _args("status")) == 0
        out = capsys.readouterr().out
        assert "Status:    idle" in out
        assert "Last sync: never" in out

    async def test_edit_then_queue(self, manager, capsys):
        code = await execute(manager, _args("edit", "task-1", "--title", "Milk"))
        assert code == 0
        assert manager.pending_count == 1

        await execute(manager, _args("queue"))
        assert 'task-1: Changed title to "Milk"' in capsys.readouterr().out

    async def test_edit_without_fields(self, manager, capsys):
        assert await execute(manager, _args("edit", "task-1")) == 1
        assert "Nothing to change" in capsys.readouterr().err

    async def test_sync_json(self, manager, capsys):
        await execute(manager, _args("edit", "task-1", "--done"))
        capsys.readouterr()

        assert await execute(manager, _args("sync", "--json")) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["success"] is True
        assert output["report"]["counts"]["applied"] == 1

    async def test_sync_nothing_to_do(self, manager, capsys):
        assert await execute(manager, _args("sync")) == 0
        assert "Nothing to sync." in capsys.readouterr().out

    async def test_conflicts_and_resolve(self, manager, fake_applier, task1, capsys):
        await execute(manager, _args("edit", "task-1", "--title", "Mine"))
        fake_applier.server["task-1"] = task1.model_copy(
            update={"title": "Theirs", "status": DONE}
        )
        await execute(manager, _args("sync"))
        conflict_id = manager.pending_conflicts[0].id
        capsys.readouterr()

        await execute(manager, _args("conflicts"))
        assert conflict_id in capsys.readouterr().out

        code = await execute(manager, _args("resolve", conflict_id, "keep_server"))
        assert code == 0
        assert "keep_server" in capsys.readouterr().out
        assert manager.cache.get("task-1").title == "Theirs"

    async def test_refresh(self, manager, capsys):
        assert await execute(manager, _args("refresh")) == 0
        assert "Cached 2 tasks." in capsys.readouterr().out


class TestRun:
    @patch("task_mirror.cli.setup_logging")
    @patch("task_mirror.cli.load_hierarchical_config", return_value={})
    @patch("task_mirror.cli.ensure_config")
    def test_init(self, mock_ensure, _mock_load, _mock_logging, tmp_path):
        mock_ensure.return_value = tmp_path / "config.yml"
        with pytest.raises(SystemExit) as exc_info:
            run(["init"])
        assert exc_info.value.code == 0
        mock_ensure.assert_called_once()

    @patch("task_mirror.cli.setup_logging")
    @patch("task_mirror.cli.ensure_config")
    @patch("task_mirror.cli.load_hierarchical_config")
    def test_log_format_flag_beats_config(
        self, mock_load, mock_ensure, mock_logging, tmp_path
    ):
        mock_load.return_value = {"logging": {"format": "text", "level": "WARNING"}}
        mock_ensure.return_value = tmp_path / "config.yml"
        with pytest.raises(SystemExit):
            run(["--log-format", "json", "init"])

        kwargs = mock_logging.call_args[1]
        assert kwargs["log_format"] == "json"
        assert kwargs["level"] == "WARNING"

    @patch("task_mirror.cli.setup_logging")
    @patch("task_mirror.cli.ensure_config")
    @patch("task_mirror.cli.load_hierarchical_config")
    def test_log_format_from_config(self, mock_load, mock_ensure, mock_logging, tmp_path):
        mock_load.return_value = {"logging": {"format": "json"}}
        mock_ensure.return_value = tmp_path / "config.yml"
        with pytest.raises(SystemExit):
            run(["init"])

        assert mock_logging.call_args[1]["log_format"] == "json"

    @patch("task_mirror.cli.load_dotenv")
    @patch("task_mirror.cli.setup_logging")
    @patch("task_mirror.cli.discover_config_files", return_value=[])
    @patch("task_mirror.cli.load_hierarchical_config", return_value={})
    def test_missing_token_exits(
        self, _mock_load, _mock_discover, _mock_logging, _mock_dotenv, capsys
    ):
        with pytest.raises(SystemExit) as exc_info:
            run(["status"])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "API token not found" in err
        assert "task-mirror init" in err

    @patch("task_mirror.cli.setup_logging")
    @patch("task_mirror.cli.load_hierarchical_config")
    def test_bad_config_file(self, mock_load, _mock_logging, capsys):
        mock_load.side_effect = ValueError("bad include")
        with pytest.raises(SystemExit) as exc_info:
            run(["status"])
        assert exc_info.value.code == 1
        assert "Could not read config file" in capsys.readouterr().err


class TestCheckConnection:
    @patch("task_mirror.cli.NotionClient")
    def test_success(self, mock_client_cls, mock_config, capsys):
        mock_client_cls.return_value.validate_connection.return_value = "Tasks bot"
        assert check_connection(mock_config) == 0
        assert "as Tasks bot" in capsys.readouterr().out

    @patch("task_mirror.cli.NotionClient")
    def test_bad_token(self, mock_client_cls, mock_config, capsys):
        mock_client_cls.return_value.validate_connection.side_effect = (
            PermanentRemoteError("API token is invalid.", status_code=401)
        )
        assert check_connection(mock_config) == 1
        assert "Connection failed" in capsys.readouterr().err
