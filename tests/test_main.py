"""Tests for the command line entry point."""
from pathlib import Path
from unittest.mock import patch

from typewriter import main as entry


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TYPEWRITER_DATA_DIR", raising=False)
        monkeypatch.delenv("TYPEWRITER_LOG_LEVEL", raising=False)
        args = entry.parse_args([])
        assert args.data_dir is None
        assert args.log_level == "INFO"

    def test_explicit_values(self):
        args = entry.parse_args(["--data-dir", "/tmp/tw", "--log-level", "DEBUG"])
        assert args.data_dir == "/tmp/tw"
        assert args.log_level == "DEBUG"

    def test_update_config(self, test_config, tmp_path):
        args = entry.parse_args(["--data-dir", str(tmp_path)])
        entry.update_config(args)
        assert test_config.data_dir == Path(tmp_path)


class TestMain:
    """Tests for server startup wiring."""

    def test_main_builds_and_runs_server(self, test_config, data_dir):
        with patch.object(entry, "TypeWriterMcpServer") as server_cls, \
                patch.object(entry, "configure_logging", return_value=data_dir / "logs") as logging_mock, \
                patch.object(entry, "atexit"), \
                patch.object(entry.metrics, "set_metrics_file") as set_metrics:
            entry.main(["--data-dir", str(data_dir)])

        logging_mock.assert_called_once()
        set_metrics.assert_called_once_with(data_dir / "metrics.json")
        server_cls.return_value.run.assert_called_once()

        rpc = server_cls.call_args.args[0]
        assert rpc.engine.database_path == data_dir / "notes.db"
        # Storage is opened by the client's initialize call, not at startup
        assert not rpc.engine.is_initialized
