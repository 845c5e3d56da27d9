"""Tests for the run CLI."""

import stat
import tempfile
from pathlib import Path
from unittest import TestCase
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from hare.cli.run import main
from hare.errors import QueueConnectionError
from hare.logging_config import configure_logging
from hare.queue_model_dto import Message

NO_DSN_ENV = {"HARE_DSN": None, "PGMQ_DSN": None, "HARE_LOG_DESTINATION": None}


def make_repo(messages, queues=("deploy",)):
    repo = MagicMock()
    repo.list_queues.return_value = list(queues)
    repo.receive.side_effect = list(messages)
    return repo


class TestRunCLI(TestCase):
    """Tests for the run CLI command."""

    def setUp(self):
        self.runner = CliRunner()
        self._tmp = tempfile.TemporaryDirectory()
        self.script_root = Path(self._tmp.name)

    def tearDown(self):
        configure_logging(None)
        self._tmp.cleanup()

    @patch("hare.cli.options.os.getenv", return_value=None)
    def test_fails_without_dsn_and_env(self, mock_getenv):
        result = self.runner.invoke(main, ["--max-messages", "1"])
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("No DSN provided", result.output)

    def test_rejects_zero_concurrency(self):
        result = self.runner.invoke(main, ["--dsn", "postgres:///db", "--max-concurrency", "0"])
        self.assertEqual(result.exit_code, 2)

    @patch("hare.cli.run.QueueRepository")
    def test_runs_handler_script_and_acknowledges(self, mock_repo_class):
        out = self.script_root / "out.txt"
        script = self.script_root / "deploy"
        script.write_text('#!/bin/sh\nprintf "%s %s" "$HARE_VAR_TYPE" "$HARE_VAR_APP" > "$HARE_VAR_OUT"\nexit 4\n')
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        headers = {"type": "deploy", "app": "myapp", "out": str(out)}
        mock_repo = make_repo([Message(headers=headers, delivery_tag=21)])
        mock_repo_class.return_value = mock_repo

        result = self.runner.invoke(
            main,
            [
                "--dsn",
                "postgres:///db",
                "--script-root",
                str(self.script_root),
                "--max-messages",
                "1",
            ],
            env=NO_DSN_ENV,
        )

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(out.read_text(), "deploy myapp")
        mock_repo_class.assert_called_once_with(dsn="postgres:///db")
        mock_repo.acknowledge.assert_called_once_with("deploy", 21, delete=False)
        mock_repo.close.assert_called_once()
        self.assertIn("Handled 1 messages", result.output)

    @patch("hare.cli.run.QueueRepository")
    def test_missing_script_is_still_acknowledged(self, mock_repo_class):
        mock_repo = make_repo([Message(headers={"type": "nothere"}, delivery_tag=2)])
        mock_repo_class.return_value = mock_repo
        log_file = self.script_root / "hare.log"

        result = self.runner.invoke(
            main,
            [
                "--dsn",
                "postgres:///db",
                "--script-root",
                str(self.script_root),
                "--log-destination",
                str(log_file),
                "--max-messages",
                "1",
            ],
            env=NO_DSN_ENV,
        )

        self.assertEqual(result.exit_code, 0, result.output)
        mock_repo.acknowledge.assert_called_once_with("deploy", 2, delete=False)
        configure_logging(None)
        self.assertIn("Handler nothere", log_file.read_text())
        self.assertIn("script not found", log_file.read_text())

    @patch("hare.cli.run.QueueRepository")
    def test_connection_lost_exits_non_zero(self, mock_repo_class):
        mock_repo = make_repo([QueueConnectionError("read from deploy failed: server closed")])
        mock_repo_class.return_value = mock_repo

        result = self.runner.invoke(main, ["--dsn", "postgres:///db"], env=NO_DSN_ENV)

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Queue connection lost", result.output)
        mock_repo.close.assert_called_once()

    @patch("hare.cli.run.QueueRepository")
    def test_missing_queue_exits_non_zero(self, mock_repo_class):
        mock_repo = make_repo([], queues=["other"])
        mock_repo_class.return_value = mock_repo

        result = self.runner.invoke(main, ["--dsn", "postgres:///db", "--queue-name", "jobs"], env=NO_DSN_ENV)

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Queue jobs does not exist", result.output)
        mock_repo.receive.assert_not_called()

    @patch("hare.cli.run.Dispatcher")
    @patch("hare.cli.run.QueueRepository")
    def test_options_override_environment(self, mock_repo_class, mock_dispatcher_class):
        mock_dispatcher_class.from_settings.return_value.run.return_value = 5

        result = self.runner.invoke(
            main,
            [
                "--queue-name",
                "jobs",
                "--handler-key",
                "handler",
                "--max-concurrency",
                "3",
                "--delete-messages",
                "--max-messages",
                "5",
            ],
            env={"PGMQ_DSN": "postgres://env/db", "HARE_DSN": None, "HARE_QUEUE": "ignored", "HARE_MAX_CONCURRENCY": "8"},
        )

        self.assertEqual(result.exit_code, 0, result.output)
        mock_repo_class.assert_called_once_with(dsn="postgres://env/db")
        settings = mock_dispatcher_class.from_settings.call_args[0][1]
        self.assertEqual(settings.queue_name, "jobs")
        self.assertEqual(settings.handler_key, "handler")
        self.assertEqual(settings.max_concurrency, 3)
        self.assertTrue(settings.delete_messages)
        mock_dispatcher_class.from_settings.return_value.run.assert_called_once_with(max_messages=5)

    def test_unwritable_log_destination_is_a_configuration_error(self):
        result = self.runner.invoke(
            main,
            ["--dsn", "postgres:///db", "--log-destination", str(self.script_root / "missing" / "hare.log")],
            env=NO_DSN_ENV,
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Configuration error", result.output)

    @patch("hare.cli.run.Dispatcher")
    @patch("hare.cli.run.QueueRepository")
    def test_reads_dotenv_from_working_directory(self, mock_repo_class, mock_dispatcher_class):
        mock_dispatcher_class.from_settings.return_value.run.return_value = 1
        env = {"HARE_DSN": None, "PGMQ_DSN": None, "HARE_QUEUE": None, "HARE_LOG_DESTINATION": None}

        with self.runner.isolated_filesystem(temp_dir=self._tmp.name):
            Path(".env").write_text("HARE_DSN=postgres://env/db\nHARE_QUEUE=fromdotenv\n")
            result = self.runner.invoke(main, ["--max-messages", "1"], env=env)

        self.assertEqual(result.exit_code, 0, result.output)
        mock_repo_class.assert_called_once_with(dsn="postgres://env/db")
        settings = mock_dispatcher_class.from_settings.call_args[0][1]
        self.assertEqual(settings.queue_name, "fromdotenv")

    @patch("hare.cli.run.Dispatcher")
    @patch("hare.cli.run.QueueRepository")
    def test_dotenv_settings_apply_when_dsn_is_given(self, mock_repo_class, mock_dispatcher_class):
        mock_dispatcher_class.from_settings.return_value.run.return_value = 1
        env = {"HARE_DSN": None, "PGMQ_DSN": None, "HARE_QUEUE": None, "HARE_LOG_DESTINATION": None}

        with self.runner.isolated_filesystem(temp_dir=self._tmp.name):
            Path(".env").write_text("HARE_QUEUE=fromdotenv\n")
            result = self.runner.invoke(main, ["--dsn", "postgres:///db", "--max-messages", "1"], env=env)

        self.assertEqual(result.exit_code, 0, result.output)
        mock_repo_class.assert_called_once_with(dsn="postgres:///db")
        settings = mock_dispatcher_class.from_settings.call_args[0][1]
        self.assertEqual(settings.queue_name, "fromdotenv")
