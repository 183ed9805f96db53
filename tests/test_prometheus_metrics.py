"""
Tests for Prometheus metrics functionality
"""

from prometheus_client import REGISTRY

from geoip_api.services.prometheus_metrics import PrometheusMetrics, prometheus_metrics


class TestPrometheusMetrics:
    """Test the PrometheusMetrics class."""

    def test_increment_lookups(self):
        before = REGISTRY.get_sample_value("geoip_lookups_total", {"result": "unresolved"}) or 0
        prometheus_metrics.increment_lookups(False)
        after = REGISTRY.get_sample_value("geoip_lookups_total", {"result": "unresolved"})
        assert after == before + 1

    def test_increment_refresh(self):
        labels = {"edition": "GeoLite2-Test", "outcome": "failed"}
        before = REGISTRY.get_sample_value("geoip_refresh_total", labels) or 0
        prometheus_metrics.increment_refresh("GeoLite2-Test", "failed")
        assert REGISTRY.get_sample_value("geoip_refresh_total", labels) == before + 1

    def test_set_generation(self):
        metrics = PrometheusMetrics()
        metrics.set_generation(7, 1700000000.0, 1690000000)
        assert REGISTRY.get_sample_value("geoip_database_generation") == 7
        assert REGISTRY.get_sample_value("geoip_database_build_epoch") == 1690000000

    def test_exposition(self):
        body = prometheus_metrics.get_metrics().decode()
        assert "geoip_build_info" in body
        assert prometheus_metrics.get_content_type().startswith("text/plain")
