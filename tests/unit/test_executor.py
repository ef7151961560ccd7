"""Unit tests for the command executor."""

import subprocess

import pytest
from unittest.mock import MagicMock, Mock, patch

from aznpm.core.exceptions import ExecutionError
from aznpm.core.executor import CommandExecutor, CommandResult, ExitStatus


@pytest.fixture
def ctx():
    ctx = Mock()
    ctx.dry_run = False
    ctx.console = Mock()
    return ctx


def completed(returncode=0, stdout=""):
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    return result


class TestClassify:
    """Tests for exit code classification."""

    def test_default_mapping(self, ctx):
        executor = CommandExecutor(ctx)
        assert executor.classify(0) is ExitStatus.SUCCESS
        assert executor.classify(1) is ExitStatus.NOT_FOUND
        assert executor.classify(2) is ExitStatus.FAILED
        assert executor.classify(4) is ExitStatus.FAILED

    def test_custom_not_found_code(self, ctx):
        """Configured not-found code should replace 1."""
        executor = CommandExecutor(ctx, not_found_exit_code=3)
        assert executor.classify(3) is ExitStatus.NOT_FOUND
        assert executor.classify(1) is ExitStatus.FAILED


class TestCommandResult:
    """Tests for CommandResult properties."""

    def test_flags_follow_status(self):
        result = CommandResult(("iptables", "-C", "X"), 1, "", ExitStatus.NOT_FOUND)
        assert result.not_found is True
        assert result.success is False
        assert result.failed is False

    def test_display_quotes_tokens(self):
        """Tokens with spaces should be shell-quoted."""
        result = CommandResult(
            ("iptables", "-m", "comment", "--comment", "ACCEPT ALL"), 0, "", ExitStatus.SUCCESS,
        )
        assert result.display == "iptables -m comment --comment 'ACCEPT ALL'"


class TestRun:
    """Tests for CommandExecutor.run."""

    @patch("aznpm.core.executor.subprocess.run")
    def test_success_captures_combined_output(self, mock_run, ctx):
        """stdout and stderr should be merged and the trailing newline dropped."""
        mock_run.return_value = completed(0, "Chain FORWARD (policy ACCEPT)\n")
        executor = CommandExecutor(ctx)

        result = executor.run(["iptables", "-n", "--list", "FORWARD"])

        assert result.success
        assert result.output == "Chain FORWARD (policy ACCEPT)"
        kwargs = mock_run.call_args.kwargs
        assert kwargs["stdout"] is subprocess.PIPE
        assert kwargs["stderr"] is subprocess.STDOUT

    @patch("aznpm.core.executor.subprocess.run")
    def test_not_found_is_not_raised(self, mock_run, ctx):
        """Exit code 1 should come back as NOT_FOUND."""
        mock_run.return_value = completed(1, "iptables: Bad rule (does a matching rule exist in that chain?).\n")
        result = CommandExecutor(ctx).run(["iptables", "-C", "FORWARD", "-j", "AZURE-NPM"])
        assert result.status is ExitStatus.NOT_FOUND
        assert result.return_code == 1

    @patch("aznpm.core.executor.subprocess.run")
    def test_other_code_is_failed(self, mock_run, ctx):
        mock_run.return_value = completed(4, "iptables: Resource temporarily unavailable.\n")
        result = CommandExecutor(ctx).run(["iptables", "-N", "AZURE-NPM"])
        assert result.failed

    @patch("aznpm.core.executor.subprocess.run")
    def test_none_stdout(self, mock_run, ctx):
        mock_run.return_value = completed(0, None)
        assert CommandExecutor(ctx).run(["true"]).output == ""

    @patch("aznpm.core.executor.subprocess.run")
    def test_logs_command_when_asked(self, mock_run, ctx):
        mock_run.return_value = completed()
        CommandExecutor(ctx).run(["iptables", "-F", "AZURE-NPM"])
        ctx.console.debug.assert_called_once_with("Running: iptables -F AZURE-NPM")

    @patch("aznpm.core.executor.subprocess.run")
    def test_no_log(self, mock_run, ctx):
        mock_run.return_value = completed()
        CommandExecutor(ctx).run(["iptables", "-C", "AZURE-NPM"], log=False)
        ctx.console.debug.assert_not_called()

    @patch("aznpm.core.executor.subprocess.run")
    def test_dry_run_does_not_spawn(self, mock_run, ctx):
        """Dry-run should report success without running anything."""
        ctx.dry_run = True
        result = CommandExecutor(ctx).run(["iptables", "-N", "AZURE-NPM"])
        assert result.success
        mock_run.assert_not_called()
        ctx.console.dry_run_msg.assert_called_once()

    @patch("aznpm.core.executor.subprocess.run")
    def test_missing_binary_raises(self, mock_run, ctx):
        mock_run.side_effect = FileNotFoundError("iptables")
        with pytest.raises(ExecutionError) as exc:
            CommandExecutor(ctx).run(["iptables", "-N", "AZURE-NPM"])
        assert "Command not found" in exc.value.message
        assert exc.value.hint is not None

    @patch("aznpm.core.executor.subprocess.run")
    def test_timeout_raises(self, mock_run, ctx):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="iptables", timeout=5)
        with pytest.raises(ExecutionError) as exc:
            CommandExecutor(ctx, timeout=5).run(["iptables", "-F", "AZURE-NPM"])
        assert "timed out after 5s" in exc.value.message

    @patch("aznpm.core.executor.subprocess.run")
    def test_timeout_override(self, mock_run, ctx):
        """Per-call timeout should win over the default."""
        mock_run.return_value = completed()
        executor = CommandExecutor(ctx, timeout=30)

        executor.run(["iptables", "-F", "X"])
        assert mock_run.call_args.kwargs["timeout"] == 30

        executor.run(["iptables", "-F", "X"], timeout=2)
        assert mock_run.call_args.kwargs["timeout"] == 2

    @patch("aznpm.core.executor.subprocess.run")
    def test_description_is_shown(self, mock_run, ctx):
        mock_run.return_value = completed()
        CommandExecutor(ctx).run(["iptables", "-F", "X"], description="Flushing X")
        ctx.console.step.assert_called_once_with("Flushing X")
