"""Tests for metric sources and the bounded metric fetch."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from panel_alerts.errors import DependencyUnavailable
from panel_alerts.metrics.source import (
    JsonFileMetricSource,
    MetricFetcher,
    MetricSource,
    StaticMetricSource,
)


class TestStaticMetricSource:
    def test_global_values(self):
        source = StaticMetricSource({"cpu_usage": 42})
        assert source.get_value("cpu_usage") == 42.0
        assert source.get_value("memory_usage") is None

    def test_server_values_do_not_fall_back(self):
        source = StaticMetricSource({"cpu_usage": 42})
        source.set("cpu_usage", 91.0, server_id="srv-web")
        assert source.get_value("cpu_usage", "srv-web") == 91.0
        assert source.get_value("cpu_usage", "srv-db") is None

    def test_set_none_removes(self):
        source = StaticMetricSource({"cpu_usage": 42})
        source.set("cpu_usage", None)
        assert source.get_value("cpu_usage") is None

    def test_satisfies_protocol(self):
        assert isinstance(StaticMetricSource(), MetricSource)


class TestJsonFileMetricSource:
    def test_reads_yaml(self, tmp_path: Path):
        path = tmp_path / "metrics.yaml"
        path.write_text(
            "global:\n  cpu_usage: 40\nservers:\n  srv-web:\n    disk_usage: 91.5\n",
            encoding="utf-8",
        )
        source = JsonFileMetricSource(path)
        assert source.get_value("cpu_usage") == 40.0
        assert source.get_value("disk_usage", "srv-web") == 91.5
        assert source.get_value("disk_usage") is None
        assert source.get_value("cpu_usage", "srv-other") is None

    def test_reread_on_every_lookup(self, tmp_path: Path):
        path = tmp_path / "metrics.json"
        path.write_text('{"global": {"cpu_usage": 10}}', encoding="utf-8")
        source = JsonFileMetricSource(path)
        assert source.get_value("cpu_usage") == 10.0
        path.write_text('{"global": {"cpu_usage": 20}}', encoding="utf-8")
        assert source.get_value("cpu_usage") == 20.0

    def test_missing_file(self, tmp_path: Path):
        assert JsonFileMetricSource(tmp_path / "nope.yaml").get_value("cpu_usage") is None


class TestMetricFetcher:
    def test_returns_value(self):
        fetcher = MetricFetcher(StaticMetricSource({"cpu_usage": 55}), timeout=1.0)
        assert fetcher.fetch("cpu_usage") == 55.0
        fetcher.close()

    def test_missing_value(self):
        fetcher = MetricFetcher(StaticMetricSource(), timeout=1.0)
        with pytest.raises(DependencyUnavailable, match="on server srv-web"):
            fetcher.fetch("cpu_usage", "srv-web")

    def test_source_exception(self):
        class Broken:
            def get_value(self, metric_name, server_id=None):
                raise OSError("no route to host")

        with pytest.raises(DependencyUnavailable, match="no route to host"):
            MetricFetcher(Broken(), timeout=1.0).fetch("cpu_usage")

    def test_non_numeric_value(self):
        class Text:
            def get_value(self, metric_name, server_id=None):
                return "high"

        with pytest.raises(DependencyUnavailable, match="high"):
            MetricFetcher(Text(), timeout=1.0).fetch("cpu_usage")

    def test_timeout(self):
        release = threading.Event()

        class Slow:
            def get_value(self, metric_name, server_id=None):
                release.wait(5)
                return 1.0

        try:
            with pytest.raises(DependencyUnavailable, match="timed out"):
                MetricFetcher(Slow(), timeout=0.05).fetch("cpu_usage")
        finally:
            release.set()

    def test_hung_source_does_not_grow_threads(self):
        release = threading.Event()

        class Hung:
            def get_value(self, metric_name, server_id=None):
                release.wait(5)
                return 1.0

        fetcher = MetricFetcher(Hung(), timeout=0.02, max_workers=2)
        before = threading.active_count()
        try:
            for _ in range(6):
                with pytest.raises(DependencyUnavailable):
                    fetcher.fetch("cpu_usage")
            assert threading.active_count() - before <= 2
        finally:
            release.set()
            fetcher.close()
