"""
Prometheus metrics for Referkit
Following standard naming conventions: https://prometheus.io/docs/practices/naming/
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# HTTP Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================================================
# Redirect & Click Metrics
# ============================================================================

# status: success, not_found, inactive
redirects_total = Counter(
    'redirects_total',
    'Total number of referral redirects processed',
    ['status']
)

redirect_duration_seconds = Histogram(
    'redirect_duration_seconds',
    'Redirect processing latency in seconds',
    buckets=[0.0005, 0.001, 0.002, 0.005, 0.01, 0.025, 0.05, 0.1]
)

link_cache_hits_total = Counter(
    'link_cache_hits_total',
    'Total number of link resolution cache hits'
)

link_cache_misses_total = Counter(
    'link_cache_misses_total',
    'Total number of link resolution cache misses'
)

clicks_recorded_total = Counter(
    'clicks_recorded_total',
    'Total number of click events recorded'
)

click_record_failures_total = Counter(
    'click_record_failures_total',
    'Click recordings that failed and were dropped'
)

# ============================================================================
# Conversion, Reward & Fraud Metrics
# ============================================================================

conversions_total = Counter(
    'conversions_total',
    'Conversions reported',
    ['conversion_type', 'result']  # result: created, duplicate
)

rewards_total = Counter(
    'rewards_total',
    'Rewards created',
    ['currency']
)

fraud_signals_total = Counter(
    'fraud_signals_total',
    'Fraud signals raised for review',
    ['reason']
)

webhook_signature_verifications_total = Counter(
    'webhook_signature_verifications_total',
    'Total webhook signature verification attempts',
    ['result']  # result: success, failure
)

# ============================================================================
# Application Health
# ============================================================================

app_uptime_seconds = Gauge(
    'app_uptime_seconds',
    'Application uptime in seconds'
)

health_check_status = Gauge(
    'health_check_status',
    'Health check status (1 = healthy, 0 = unhealthy)',
    ['check_type']  # check_type: database, redis
)

# Initialize app start time for uptime tracking
APP_START_TIME = time.time()


def update_uptime():
    """Update application uptime metric"""
    app_uptime_seconds.set(time.time() - APP_START_TIME)
