"""Tests for CLI commands"""

import pytest
from unittest.mock import Mock, patch
from typer.testing import CliRunner
from jobctl.main import app
from jobctl.client.base import JobQueueAPIError
from jobctl.utils.config_manager import ConfigManager


# Test fixtures
@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def mock_client():
    """Mock API client"""
    client = Mock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=None)
    return client


@pytest.fixture
def temp_config(tmp_path):
    """Config manager writing to a temporary directory"""
    manager = ConfigManager(tmp_path / "jobctl")
    with patch("jobctl.commands.config.config", manager):
        yield manager


JOB = {
    "id": "6f1c2a9e-5b7d-4c3e-9a21-0d8f4e6b7c10",
    "type": "send_email",
    "payload": {"to": "user@example.com"},
    "status": "failed",
    "priority": 1,
    "attempts": 3,
    "max_attempts": 3,
    "scheduled_for": "2024-01-01T00:00:00Z",
    "error": "SMTP timeout",
    "result": None,
    "locked_by": None,
    "created_at": "2024-01-01T00:00:00Z",
    "updated_at": "2024-01-01T00:05:00Z",
}

SCHEDULE = {
    "id": "c0ffee00-1111-2222-3333-444455556666",
    "name": "Nightly",
    "type": "generate_report",
    "schedule_expression": "0 2 * * *",
    "config": {"report_type": "system_health"},
    "priority": 5,
    "is_active": True,
    "last_run": None,
    "next_run": "2024-01-02T02:00:00Z",
}


class TestMainCommands:
    """Test main CLI commands"""

    def test_version(self, runner):
        """Test version option"""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "jobctl v1.0.0" in result.stdout

    def test_version_command(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "1.0.0" in result.stdout

    @patch("jobctl.main.JobQueueClient")
    def test_status_success(self, mock_client_class, mock_client, runner):
        """Test status command with successful connection"""
        mock_client.health_check.return_value = {
            "ok": True,
            "version": "1.0.0",
            "environment": "development",
            "worker": {"active_workers": 2, "queue_depth": 5, "stuck_jobs_count": 0},
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Connected Successfully" in result.stdout
        assert "Active Workers" in result.stdout

    @patch("jobctl.main.JobQueueClient")
    def test_status_failure(self, mock_client_class, mock_client, runner):
        """Test status command with connection failure"""
        mock_client.health_check.side_effect = JobQueueAPIError("Connection failed")
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "Connection Failed" in result.stdout


class TestJobsCommands:
    """Test jobs commands"""

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_stats(self, mock_client_class, mock_client, runner):
        mock_client.get_job_stats.return_value = {
            "pending": 4,
            "processing": 1,
            "completed": 10,
            "failed": 2,
            "by_type": {"send_email": 17},
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "stats"])
        assert result.exit_code == 0
        assert "Queue Statistics" in result.stdout
        assert "send_email" in result.stdout

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_list_empty(self, mock_client_class, mock_client, runner):
        mock_client.list_jobs.return_value = {"jobs": [], "total": 0}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "list"])
        assert result.exit_code == 0
        assert "No jobs found!" in result.stdout

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_list_with_filters(self, mock_client_class, mock_client, runner):
        mock_client.list_jobs.return_value = {"jobs": [JOB], "total": 1}
        mock_client_class.return_value = mock_client

        result = runner.invoke(
            app, ["jobs", "list", "--status", "failed", "--type", "send_email", "--limit", "5"]
        )
        assert result.exit_code == 0
        assert "6f1c2a9e" in result.stdout
        mock_client.list_jobs.assert_called_once_with(
            status=["failed"], type="send_email", limit=5, offset=0
        )

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_show(self, mock_client_class, mock_client, runner):
        mock_client.get_job.return_value = JOB
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "show", JOB["id"]])
        assert result.exit_code == 0
        assert "SMTP timeout" in result.stdout
        assert "user@example.com" in result.stdout

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_enqueue(self, mock_client_class, mock_client, runner):
        mock_client.enqueue_job.return_value = {"job_id": "abc123", "status": "pending"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(
            app,
            ["jobs", "enqueue", "send_email", "--payload", '{"to": "a@b.c"}', "--priority", "3"],
        )
        assert result.exit_code == 0
        assert "Enqueued send_email job abc123" in result.stdout
        mock_client.enqueue_job.assert_called_once_with(
            "send_email", {"to": "a@b.c"}, priority=3, delay_seconds=0, max_attempts=None
        )

    def test_enqueue_invalid_payload(self, runner):
        result = runner.invoke(app, ["jobs", "enqueue", "send_email", "--payload", "{nope"])
        assert result.exit_code == 1
        assert "not valid JSON" in result.stdout

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_retry(self, mock_client_class, mock_client, runner):
        mock_client.retry_job.return_value = {"success": True}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "retry", "abc123"])
        assert result.exit_code == 0
        assert "Job abc123 reset to pending" in result.stdout

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_retry_failed(self, mock_client_class, mock_client, runner):
        mock_client.retry_failed.return_value = {"affected": 3}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "retry-failed", "--max-attempts", "6"])
        assert result.exit_code == 0
        assert "Reset 3 failed jobs to pending" in result.stdout
        mock_client.retry_failed.assert_called_once_with(max_attempts=6, limit=50)

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_cleanup(self, mock_client_class, mock_client, runner):
        mock_client.cleanup_jobs.return_value = {"affected": 7}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "cleanup", "--older-than-days", "14"])
        assert result.exit_code == 0
        assert "Deleted 7 completed jobs" in result.stdout


class TestSchedulesCommands:
    """Test schedules commands"""

    @patch("jobctl.commands.schedules.JobQueueClient")
    def test_list_empty(self, mock_client_class, mock_client, runner):
        mock_client.list_schedules.return_value = {"schedules": [], "total": 0}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["schedules", "list"])
        assert result.exit_code == 0
        assert "No schedules defined" in result.stdout

    @patch("jobctl.commands.schedules.JobQueueClient")
    def test_list(self, mock_client_class, mock_client, runner):
        mock_client.list_schedules.return_value = {"schedules": [SCHEDULE], "total": 1}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["schedules", "list"])
        assert result.exit_code == 0
        assert "Nightly" in result.stdout

    @patch("jobctl.commands.schedules.JobQueueClient")
    def test_add(self, mock_client_class, mock_client, runner):
        mock_client.create_schedule.return_value = {
            "schedule_id": "s1",
            "next_run": "2024-01-02T02:00:00Z",
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(
            app,
            [
                "schedules", "add", "Nightly", "generate_report", "0 2 * * *",
                "--config", '{"report_type": "system_health"}', "--inactive",
            ],
        )
        assert result.exit_code == 0
        assert "Scheduled 'Nightly'" in result.stdout
        mock_client.create_schedule.assert_called_once_with(
            "Nightly",
            "generate_report",
            "0 2 * * *",
            config={"report_type": "system_health"},
            priority=5,
            is_active=False,
        )

    @patch("jobctl.commands.schedules.JobQueueClient")
    def test_add_invalid_expression(self, mock_client_class, mock_client, runner):
        mock_client.create_schedule.side_effect = JobQueueAPIError(
            "Invalid schedule expression", status_code=422
        )
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["schedules", "add", "Bad", "job", "*/5 * * * *"])
        assert result.exit_code == 1
        assert "Failed to add schedule" in result.stdout

    @patch("jobctl.commands.schedules.JobQueueClient")
    def test_remove_missing_schedule_warns(self, mock_client_class, mock_client, runner):
        mock_client.delete_schedule.return_value = {"removed": False, "schedule_id": "s1"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["schedules", "remove", "s1"])
        assert result.exit_code == 0
        assert "did not exist" in result.stdout

    @patch("jobctl.commands.schedules.JobQueueClient")
    def test_pause_and_resume(self, mock_client_class, mock_client, runner):
        mock_client.update_schedule.return_value = SCHEDULE
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["schedules", "pause", "s1"])
        assert result.exit_code == 0
        assert "Paused schedule s1" in result.stdout
        mock_client.update_schedule.assert_called_with("s1", is_active=False)

        result = runner.invoke(app, ["schedules", "resume", "s1"])
        assert result.exit_code == 0
        assert "Resumed schedule s1" in result.stdout
        mock_client.update_schedule.assert_called_with("s1", is_active=True)


class TestConfigCommands:
    """Test config commands"""

    def test_set_and_get_config(self, temp_config, runner):
        result = runner.invoke(app, ["config", "set", "api.base_url", "http://jobs:9000"])
        assert result.exit_code == 0
        assert temp_config.get("api.base_url") == "http://jobs:9000"

        result = runner.invoke(app, ["config", "get", "api.base_url"])
        assert result.exit_code == 0
        assert "http://jobs:9000" in result.stdout

    def test_set_parses_scalar_values(self, temp_config, runner):
        runner.invoke(app, ["config", "set", "display.show_payloads", "true"])
        runner.invoke(app, ["config", "set", "api.timeout", "45"])

        assert temp_config.get("display.show_payloads") is True
        assert temp_config.get("api.timeout") == 45

    def test_set_config_invalid_url(self, temp_config, runner):
        result = runner.invoke(app, ["config", "set", "api.base_url", "invalid-url"])
        assert result.exit_code == 1
        assert "must start with http" in result.stdout

    def test_set_config_invalid_timeout(self, temp_config, runner):
        result = runner.invoke(app, ["config", "set", "api.timeout", "soon"])
        assert result.exit_code == 1

    def test_get_missing_key(self, temp_config, runner):
        result = runner.invoke(app, ["config", "get", "api.nope"])
        assert result.exit_code == 0
        assert "not found" in result.stdout

    def test_show_config(self, temp_config, runner):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "jobctl Configuration" in result.stdout
        assert "jobs_per_page" in result.stdout

    def test_reset_config(self, temp_config, runner):
        temp_config.set("display.jobs_per_page", 5)

        result = runner.invoke(app, ["config", "reset", "--yes"])
        assert result.exit_code == 0
        assert temp_config.get("display.jobs_per_page") == 20


class TestConfigManager:
    """Test the YAML-backed configuration store"""

    def test_defaults_without_file(self, tmp_path):
        manager = ConfigManager(tmp_path / "missing")

        assert manager.get("display.jobs_per_page") == 20
        assert manager.get("api.timeout") == 30
        assert not manager.config_file.exists()

    def test_file_values_merge_with_defaults(self, tmp_path):
        manager = ConfigManager(tmp_path)
        manager.config_file.write_text("api:\n  base_url: http://other:8000\n")

        assert manager.get("api.base_url") == "http://other:8000"
        assert manager.get("api.timeout") == 30

    def test_env_var_sets_config_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JOBCTL_CONFIG_DIR", str(tmp_path / "custom"))

        assert ConfigManager().config_file == tmp_path / "custom" / "config.yaml"


class TestErrorHandling:
    """Test error handling"""

    @patch("jobctl.commands.jobs.JobQueueClient")
    def test_api_error_handling(self, mock_client_class, mock_client, runner):
        """Test API error handling"""
        mock_client.get_job_stats.side_effect = JobQueueAPIError("API Error")
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "stats"])
        assert result.exit_code == 1
        assert "API Error" in result.stdout

    def test_invalid_command(self, runner):
        """Test invalid command handling"""
        result = runner.invoke(app, ["invalid-command"])
        assert result.exit_code != 0
