"""Tests for metrics collection."""

from siteaccess.core.metrics import MetricsCollector


def test_counter_increment():
    m = MetricsCollector()
    m.inc("role_cache_hits_total")
    m.inc("role_cache_hits_total")
    assert m.get("role_cache_hits_total") == 2
    assert m.get("never_touched_total") == 0


def test_gauge_set():
    m = MetricsCollector()
    m.set_gauge("role_cache_entries", 12)
    assert m.get("role_cache_entries") == 12


def test_hit_ratio():
    m = MetricsCollector()
    assert m.cache_hit_ratio() == 0.0
    m.inc("role_cache_hits_total", 3)
    m.inc("role_cache_misses_total")
    assert m.cache_hit_ratio() == 0.75


def test_prometheus_format():
    m = MetricsCollector()
    m.inc("access_decisions_denied_total", 5)
    m.set_gauge("role_cache_entries", 2)
    text = m.to_prometheus()
    assert "siteaccess_access_decisions_denied_total 5" in text
    assert "siteaccess_role_cache_entries 2" in text
    assert "siteaccess_role_cache_hit_ratio 0.000" in text


def test_to_dict():
    m = MetricsCollector()
    m.inc("role_cache_misses_total")
    data = m.to_dict()
    assert data["counters"] == {"siteaccess_role_cache_misses_total": 1}
    assert data["uptime_seconds"] >= 0
