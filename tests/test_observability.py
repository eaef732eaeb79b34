"""Tests for metrics and structured logging."""

import json
import logging

from skillselect.observability import LOG_FORMAT, MetricsRegistry, get_logger, setup_logging


class TestMetricsRegistry:
    def test_default_metrics_registered(self):
        registry = MetricsRegistry()
        for name in [
            "skill_metadata_error_total",
            "skill_duplicate_total",
            "skill_oversize_total",
            "skill_suppressed_total",
            "skill_activated_total",
            "skill_deactivated_total",
            "evaluation_cycle_total",
        ]:
            assert registry.get_counter(name) is not None
        assert registry.get_histogram("evaluation_duration_seconds") is not None

    def test_counter_labels(self):
        registry = MetricsRegistry()
        registry.increment("evaluation_cycle_total", labels={"outcome": "published"})
        registry.increment("evaluation_cycle_total", labels={"outcome": "published"})
        registry.increment("evaluation_cycle_total", labels={"outcome": "skipped"})

        counter = registry.get_counter("evaluation_cycle_total")
        assert counter.get({"outcome": "published"}) == 2
        assert counter.total() == 3

    def test_unknown_metric_is_ignored(self):
        registry = MetricsRegistry()
        registry.increment("does_not_exist")
        registry.observe("does_not_exist", 1.0)
        assert registry.get_counter("does_not_exist") is None

    def test_histogram_percentiles(self):
        registry = MetricsRegistry()
        for value in range(1, 101):
            registry.observe("evaluation_duration_seconds", value / 100)
        histogram = registry.get_histogram("evaluation_duration_seconds")
        assert histogram.get_percentile(0.5) == 0.51
        assert histogram.get_percentile(0.99) == 1.0

    def test_prometheus_export(self):
        registry = MetricsRegistry()
        registry.increment("skill_oversize_total", value=2)
        registry.increment("evaluation_cycle_total", labels={"outcome": "published"})
        output = registry.to_prometheus()
        assert "# TYPE skill_oversize_total counter" in output
        assert "skill_oversize_total 2" in output
        assert 'evaluation_cycle_total{outcome="published"} 1' in output
        assert "skill_duplicate_total 0" in output
        assert "evaluation_duration_seconds_count 0" in output

    def test_json_export(self):
        registry = MetricsRegistry()
        registry.increment("skill_suppressed_total")
        data = registry.to_json()
        assert data["counters"]["skill_suppressed_total"] == [{"labels": {}, "value": 1}]
        assert data["histograms"]["evaluation_duration_seconds"]["count"] == 0

    def test_reset_all(self):
        registry = MetricsRegistry()
        registry.increment("skill_activated_total", value=5)
        registry.observe("evaluation_duration_seconds", 0.2)
        registry.reset_all()
        assert registry.get_counter("skill_activated_total").total() == 0
        assert registry.get_histogram("evaluation_duration_seconds").values == []


class TestStructuredLogger:
    def test_json_event_with_cycle_id(self, caplog):
        logger = get_logger("engine", cycle_id=7)
        with caplog.at_level(logging.INFO, logger="skillselect.engine"):
            logger.info("cycle_published", activated=["react"])

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["event"] == "cycle_published"
        assert entry["component"] == "engine"
        assert entry["cycle_id"] == 7
        assert entry["activated"] == ["react"]

    def test_without_cycle_id(self, caplog):
        logger = get_logger("registry")
        with caplog.at_level(logging.DEBUG, logger="skillselect.registry"):
            logger.debug("refresh_skipped", paths=3)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["level"] == "DEBUG"
        assert "cycle_id" not in entry


class TestSetupLogging:
    def test_level_and_format(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        setup_logging("debug")
        setup_logging("nonsense")

        assert calls[0]["level"] == logging.DEBUG
        assert calls[0]["format"] == LOG_FORMAT
        assert calls[1]["level"] == logging.INFO
