"""
Unit tests for the exporter entry point: flags, wiring and lifecycle.
"""
import pytest
from unittest.mock import patch, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import exporter
from lmq_exporter.collector.lmq_collector import LMQCollector
from lmq_exporter.common.exceptions import ConfigurationError
from lmq_exporter.web.server import ExporterServer


def _args(*argv):
    return exporter.build_parser().parse_args(list(argv))


class TestBuildParser:
    """Command-line flags"""

    def test_defaults_from_settings(self):
        args = _args()
        assert args.listen_address == exporter.settings.web.listen_address
        assert args.metrics_path == exporter.settings.web.metrics_path
        assert args.min_interval == exporter.settings.collector.min_interval
        assert args.lmq_uri == exporter.settings.lmq.uri

    def test_dotted_flags(self):
        args = _args(
            "--web.listen-address", "127.0.0.1:9101",
            "--web.metrics-path", "/lmq",
            "--collector.min-interval", "30s",
            "--lmq.uri", "http://lmq:9980/stats",
            "--lmq.timeout", "2s",
            "--log.level", "debug",
        )
        assert args.listen_address == "127.0.0.1:9101"
        assert args.metrics_path == "/lmq"
        assert args.min_interval == "30s"
        assert args.lmq_uri == "http://lmq:9980/stats"
        assert args.lmq_timeout == "2s"
        assert args.log_level == "DEBUG"

    def test_rejects_unknown_log_level(self):
        with pytest.raises(SystemExit):
            _args("--log.level", "chatty")


class TestWiring:
    """Collector and server construction"""

    def test_create_collector_parses_durations(self):
        collector = exporter.create_collector(
            _args("--collector.min-interval", "1m", "--lmq.timeout", "750ms")
        )
        try:
            assert isinstance(collector, LMQCollector)
            assert collector.interval == 60.0
            assert collector.timeout == 0.75
        finally:
            collector.close()

    def test_create_collector_invalid_uri(self):
        with pytest.raises(ConfigurationError):
            exporter.create_collector(_args("--lmq.uri", "lmq:9980"))

    def test_create_server_registers_collector(self):
        collector = MagicMock()
        collector.describe.return_value = []
        server = exporter.create_server(
            _args("--web.listen-address", "127.0.0.1:9555", "--web.metrics-path", "/m"),
            collector,
        )
        assert isinstance(server, ExporterServer)
        assert server.server_address == ("127.0.0.1", 9555)
        assert server.metrics_path == "/m"
        assert server.collector is collector
        collector.describe.assert_called_once()

    def test_create_server_invalid_address(self):
        with pytest.raises(ConfigurationError):
            exporter.create_server(_args("--web.listen-address", "nowhere"), MagicMock())


class TestMain:
    """main() lifecycle"""

    @pytest.fixture(autouse=True)
    def _no_signal_handlers(self):
        with patch("exporter.signal.signal"):
            yield

    def test_invalid_uri_exits_1(self):
        assert exporter.main(["--lmq.uri", "not-a-uri"]) == 1

    def test_invalid_interval_exits_1(self):
        assert exporter.main(["--collector.min-interval", "soon"]) == 1

    def test_invalid_listen_address_exits_1(self):
        assert exporter.main(["--web.listen-address", "9001"]) == 1

    def test_runs_until_stopped(self):
        server = MagicMock()
        stop_event = MagicMock()
        stop_event.wait.side_effect = [False, True]

        with patch("exporter.create_server", return_value=server), \
             patch("exporter.threading.Event", return_value=stop_event):
            assert exporter.main([]) == 0

        server.start.assert_called_once()
        server.stop.assert_called_once()
        assert stop_event.wait.call_count == 2

    def test_bind_failure_exits_1(self):
        server = MagicMock()
        server.start.side_effect = OSError("Address already in use")

        with patch("exporter.create_server", return_value=server):
            assert exporter.main([]) == 1

        server.stop.assert_not_called()

    def test_signal_handler_sets_stop_event(self):
        stop_event = MagicMock()
        stop_event.wait.return_value = True

        with patch("exporter.create_server", return_value=MagicMock()), \
             patch("exporter.threading.Event", return_value=stop_event), \
             patch("exporter.signal.signal") as mock_signal:
            exporter.main([])

        handler = mock_signal.call_args_list[0][0][1]
        handler(exporter.signal.SIGTERM, None)
        stop_event.set.assert_called_once()
