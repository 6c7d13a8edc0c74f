"""Tests for the ratio-master command."""

from __future__ import annotations

import asyncio
import io

import pytest
from click.testing import CliRunner
from rich.console import Console

import ratiomaster.cli.main as cli_main
from ratiomaster import __version__
from ratiomaster.cli.console import SessionDisplay, render_outcome, render_results
from ratiomaster.cli.main import cli, derive_speed
from ratiomaster.cli.verbosity import VerbosityManager
from ratiomaster.exceptions import NetworkError
from ratiomaster.models import LogLevel
from ratiomaster.tracker import AnnounceEvent, AnnounceOutcome, AnnounceStatus
from ratiomaster.utils.shutdown import is_shutting_down
from tests.conftest import bdict, bint, bstr

pytestmark = [pytest.mark.unit, pytest.mark.cli]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def captured_sessions(monkeypatch):
    """Replace the event loop run with a recorder."""
    sessions = []

    def _fake_run(session, display):
        sessions.append(session)
        session.state.uploaded = session.state.downloaded * 2
        return False

    monkeypatch.setattr(cli_main, "run_session", _fake_run)
    return sessions


class TestDryRun:
    """Tests for --dry-run."""

    def test_displays_torrent(self, runner, simple_torrent_file):
        """Test the torrent panel and the dry-run notice."""
        result = runner.invoke(cli, [str(simple_torrent_file), "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "Test-File" in result.output
        assert "100 MB" in result.output
        assert "400" in result.output
        assert "http://tracker.example.com/announce" in result.output
        assert "DRY-RUN" in result.output

    def test_multifile(self, runner, multifile_torrent_file):
        """Test multi-file sizes are summed."""
        result = runner.invoke(cli, [str(multifile_torrent_file), "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "75 MB" in result.output

    def test_size_estimate(self, runner, simple_torrent_file):
        """Test the estimated time for a size target."""
        result = runner.invoke(
            cli, [str(simple_torrent_file), "--dry-run", "-S", "100", "-s", "1024"]
        )
        assert result.exit_code == 0, result.output
        assert "1m40s" in result.output

    def test_no_tracker_allowed(self, runner, write_torrent):
        """Test torrents without announce URL can still be inspected."""
        path = write_torrent(bdict(info=bdict(length=bint(5), name=bstr("x"))))
        result = runner.invoke(cli, [str(path), "--dry-run"])
        assert result.exit_code == 0, result.output

    def test_sends_nothing(self, runner, simple_torrent_file, captured_sessions):
        """Test no session is started."""
        runner.invoke(cli, [str(simple_torrent_file), "--dry-run"])
        assert captured_sessions == []


class TestErrors:
    """Tests for fatal errors before the session."""

    def test_bad_extension(self, runner, tmp_path):
        """Test files without .torrent are a usage error."""
        path = tmp_path / "file.txt"
        path.write_bytes(b"d4:infodee")
        result = runner.invoke(cli, [str(path)])
        assert result.exit_code == 2
        assert ".torrent extension" in result.output

    def test_invalid_torrent(self, runner, invalid_torrent_file):
        """Test non-torrent content."""
        result = runner.invoke(cli, [str(invalid_torrent_file)])
        assert result.exit_code == 1
        assert "valid torrent file" in result.output

    def test_missing_file(self, runner, tmp_path):
        """Test a missing file."""
        result = runner.invoke(cli, [str(tmp_path / "missing.torrent")])
        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_missing_tracker(self, runner, write_torrent):
        """Test a real run needs an announce URL."""
        path = write_torrent(bdict(info=bdict(length=bint(5), name=bstr("x"))))
        result = runner.invoke(cli, [str(path)])
        assert result.exit_code == 1
        assert "no announce URL" in result.output

    def test_size_limit(self, runner, simple_torrent_file):
        """Test the upload size limit."""
        result = runner.invoke(cli, [str(simple_torrent_file), "-S", "8388609"])
        assert result.exit_code == 2

    def test_zero_speed(self, runner, simple_torrent_file):
        """Test speeds must be positive."""
        result = runner.invoke(cli, [str(simple_torrent_file), "-s", "0"])
        assert result.exit_code == 2

    def test_version(self, runner):
        """Test --version."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestRun:
    """Tests for option handling on a real run."""

    def test_speed_from_size_and_time(self, runner, simple_torrent_file, captured_sessions):
        """Test --time with --size derives the speed."""
        result = runner.invoke(cli, [str(simple_torrent_file), "-S", "100", "-t", "10"])
        assert result.exit_code == 0, result.output
        simulation = captured_sessions[0].config.simulation
        assert simulation.speed_kib == 10240
        assert simulation.duration is None
        assert simulation.upload_target == 100 * 1024 * 1024

    def test_time_alone_is_duration(self, runner, simple_torrent_file, captured_sessions):
        """Test --time without --size limits the duration."""
        result = runner.invoke(cli, [str(simple_torrent_file), "-t", "30", "-s", "64"])
        assert result.exit_code == 0, result.output
        simulation = captured_sessions[0].config.simulation
        assert simulation.duration == 30
        assert simulation.speed_kib == 64

    def test_port_and_listen(self, runner, simple_torrent_file, captured_sessions):
        """Test --port fixes the announced port and --listen enables the responder."""
        result = runner.invoke(cli, [str(simple_torrent_file), "--port", "6881", "--listen"])
        assert result.exit_code == 0, result.output
        session = captured_sessions[0]
        assert session.identity.listen_port == 6881
        assert session.config.network.enable_responder is True

    def test_results(self, runner, simple_torrent_file, captured_sessions):
        """Test the summary shows the simulated ratio."""
        result = runner.invoke(cli, [str(simple_torrent_file)])
        assert result.exit_code == 0, result.output
        assert "SESSION COMPLETE" in result.output
        assert "2.00" in result.output
        assert "Excellent" in result.output

    def test_interrupted_exit_code(self, runner, simple_torrent_file, monkeypatch):
        """Test an interrupted session still reports and exits 130."""
        monkeypatch.setattr(cli_main, "run_session", lambda session, display: True)
        result = runner.invoke(cli, [str(simple_torrent_file)])
        assert result.exit_code == 130
        assert "SESSION INTERRUPTED" in result.output

    def test_config_file(self, runner, simple_torrent_file, tmp_path, captured_sessions):
        """Test a config file feeds the session and flags override it."""
        config_path = tmp_path / "rm.toml"
        config_path.write_text("[simulation]\nspeed_kib = 77\njitter = 0.1\n")
        result = runner.invoke(
            cli, [str(simple_torrent_file), "-c", str(config_path), "-s", "88"]
        )
        assert result.exit_code == 0, result.output
        simulation = captured_sessions[0].config.simulation
        assert simulation.speed_kib == 88
        assert simulation.jitter == pytest.approx(0.1)


class _ScriptedSession:
    """Session stand-in whose run ends normally or by cancellation."""

    def __init__(self, cancelled: bool):
        self.cancelled = cancelled
        self.ran = False

    async def run(self):
        self.ran = True
        if self.cancelled:
            raise asyncio.CancelledError


class TestRunSession:
    """Tests for running a session under the event loop."""

    @staticmethod
    def _display() -> SessionDisplay:
        return SessionDisplay(Console(file=io.StringIO(), no_color=True), upload_target=None)

    def test_completed(self):
        """Test a session that ends on its own is not an interruption."""
        session = _ScriptedSession(cancelled=False)
        assert cli_main.run_session(session, self._display()) is False
        assert session.ran
        assert not is_shutting_down()

    def test_cancelled_marks_shutdown(self):
        """Test a cancelled session sets the shutdown flag and reports it."""
        session = _ScriptedSession(cancelled=True)
        assert cli_main.run_session(session, self._display()) is True
        assert is_shutting_down()


class TestHelpers:
    """Tests for CLI helpers."""

    @pytest.mark.parametrize(
        ("size", "seconds", "speed"),
        [(100, 10, 10240), (1, 1, 1024), (1, 10000, 1)],
    )
    def test_derive_speed(self, size, seconds, speed):
        """Test speed derivation with its floor of 1."""
        assert derive_speed(size, seconds) == speed

    def test_verbosity(self):
        """Test -v flags only lower the log level."""
        assert VerbosityManager(0).log_level(LogLevel.WARNING) is LogLevel.WARNING
        assert VerbosityManager(1).log_level(LogLevel.WARNING) is LogLevel.INFO
        assert VerbosityManager(5).log_level(LogLevel.WARNING) is LogLevel.DEBUG
        assert VerbosityManager(1).log_level(LogLevel.DEBUG) is LogLevel.DEBUG


class TestConsole:
    """Tests for rich rendering helpers."""

    @staticmethod
    def _console() -> tuple[Console, io.StringIO]:
        buffer = io.StringIO()
        return Console(file=buffer, width=120, no_color=True), buffer

    def test_outcomes(self):
        """Test each outcome kind is rendered."""
        console, buffer = self._console()
        render_outcome(console, AnnounceOutcome(AnnounceEvent.STARTED, AnnounceStatus.OK, interval=1800))
        render_outcome(
            console,
            AnnounceOutcome(AnnounceEvent.NONE, AnnounceStatus.TRACKER_ERROR, failure_reason="banned"),
        )
        render_outcome(
            console,
            AnnounceOutcome(
                AnnounceEvent.STOPPED,
                AnnounceStatus.NETWORK_ERROR,
                error=NetworkError("Tracker request timed out"),
            ),
        )
        text = buffer.getvalue()
        assert "announce started accepted (interval 1800s)" in text
        assert "announce none rejected by tracker: banned" in text
        assert "announce stopped failed: Tracker request timed out" in text

    def test_results_low_ratio(self, simple_torrent_file):
        """Test a ratio below one."""
        from ratiomaster.session import AnnounceSession, prepare_torrent

        prepared = prepare_torrent(simple_torrent_file)
        session = AnnounceSession(prepared.metadata, prepared.info_hash)
        session.state.uploaded = session.state.downloaded // 2
        console, buffer = self._console()
        render_results(console, session)
        assert "0.50" in buffer.getvalue()
        assert "below 1.0" in buffer.getvalue()

    def test_display_tick(self, simple_torrent_file):
        """Test the live display follows the session counters."""
        from ratiomaster.session import AnnounceSession, prepare_torrent

        prepared = prepare_torrent(simple_torrent_file)
        session = AnnounceSession(prepared.metadata, prepared.info_hash)
        console, _ = self._console()
        display = SessionDisplay(console, upload_target=1024 * 1024)
        session.tick(1.0)
        display.on_tick(session)
        task = display.progress.tasks[0]
        assert task.completed == session.state.uploaded
        assert "1 MB" in task.fields["uploaded"]
