"""
Prometheus metrics for GeoIP API
"""

from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST

from ..config import API_VERSION

# Build info
BUILD_INFO = Gauge(
    'geoip_build_info',
    'Build information',
    ['version']
)

# Lookup outcomes
LOOKUPS_TOTAL = Counter(
    'geoip_lookups_total',
    'Total number of lookups served',
    ['result']
)

REQUEST_ERRORS_TOTAL = Counter(
    'geoip_request_errors_total',
    'Requests rejected before lookup',
    ['reason']
)

# Refresh cycles
REFRESH_TOTAL = Counter(
    'geoip_refresh_total',
    'Database refresh attempts per edition',
    ['edition', 'outcome']
)

DATABASE_GENERATION = Gauge(
    'geoip_database_generation',
    'Generation number of the database currently served'
)

DATABASE_LAST_REFRESH = Gauge(
    'geoip_database_last_refresh',
    'Timestamp the served database generation was opened'
)

DATABASE_BUILD_EPOCH = Gauge(
    'geoip_database_build_epoch',
    'Build epoch recorded in the served database metadata'
)


class PrometheusMetrics:
    """Service for managing Prometheus metrics."""

    def __init__(self):
        BUILD_INFO.labels(version=API_VERSION).set(1)

    def increment_lookups(self, resolved: bool):
        """Increment lookup counter."""
        LOOKUPS_TOTAL.labels(result="resolved" if resolved else "unresolved").inc()

    def increment_request_errors(self, reason: str):
        REQUEST_ERRORS_TOTAL.labels(reason=reason).inc()

    def increment_refresh(self, edition: str, outcome: str):
        """Increment refresh counter for an edition."""
        REFRESH_TOTAL.labels(edition=edition, outcome=outcome).inc()

    def set_generation(self, generation: int, opened_at: float, build_epoch: int):
        """Record the generation now being served."""
        DATABASE_GENERATION.set(generation)
        DATABASE_LAST_REFRESH.set(opened_at)
        DATABASE_BUILD_EPOCH.set(build_epoch)

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest()

    def get_content_type(self) -> str:
        """Get the content type for Prometheus metrics."""
        return CONTENT_TYPE_LATEST


# Global metrics instance
prometheus_metrics = PrometheusMetrics()
