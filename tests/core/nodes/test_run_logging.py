"""Tests for synaptic.core.nodes.run_logging module."""

import logging
import re

from synaptic.core.nodes.actions import END
from synaptic.core.nodes.graph import Graph
from synaptic.core.nodes.run_logging import (
    generate_run_id,
    log_complete,
    log_error,
    log_start,
    truncate,
)


class TestRunLogging:
    """Tests for run-scoped logging helpers."""

    def test_run_id_format(self):
        """Test run ids are timestamped with a short suffix."""
        assert re.fullmatch(r"\d{8}_\d{6}_[a-z0-9]{3}", generate_run_id())

    def test_truncate(self):
        """Test long values are cut with a length note."""
        assert truncate("short") == "short"
        assert truncate("x" * 150, max_length=10) == "xxxxxxxxxx... (150 chars)"

    def test_line_format(self, caplog):
        """Test events render as one greppable line, skipping None values."""
        log = logging.getLogger("synaptic.test")
        with caplog.at_level(logging.DEBUG, logger="synaptic.test"):
            log_start(log, "qa", "step_start", node="Summarize", index=None)
            log_complete(log, "qa", "graph_complete", 0.42, steps=2)
            log_error(log, "qa", "step_failed", ValueError("bad"), node="Output")

        assert caplog.messages == [
            "[qa] step_start: node=Summarize",
            "[qa] graph_complete: steps=2 (0.4s)",
            "[qa] step_failed: node=Output, error=bad",
        ]

    def test_none_logger_is_noop(self):
        """Test helpers accept a missing logger."""
        log_start(None, "qa", "graph_start")
        log_error(None, "qa", "graph_failed", "boom")

    def test_graph_run_events(self, recorder, caplog):
        """Test a run logs start, steps, transitions and completion."""
        graph = Graph("events")
        graph.register(recorder("a"), "a", start=True) >> END

        with caplog.at_level(logging.DEBUG, logger="synaptic.run"):
            graph.run({})

        events = [message.split(":")[0] for message in caplog.messages]
        assert events == [
            "[events] graph_start",
            "[events] step_start",
            "[events] step_complete",
            "[events] transition",
            "[events] graph_complete",
        ]
