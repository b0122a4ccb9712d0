from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import time

# Metrics definitions
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

REDIRECT_TOTAL = Counter("redirect_total", "Total link redirects")
REDIRECT_404_TOTAL = Counter("redirect_404_total", "Total failed redirects (404)")
EVENT_RECORD_FAILURES_TOTAL = Counter(
    "event_record_failures_total",
    "Click/view writes that failed and were dropped",
    ["kind"]
)
PROFILE_VIEWS_TOTAL = Counter("profile_views_total", "Total public profile views")
METADATA_FETCH_TOTAL = Counter("metadata_fetch_total", "Metadata fetches by outcome", ["outcome"])
GEO_LOOKUP_FAILURES_TOTAL = Counter("geo_lookup_failures_total", "Geo lookups that returned no data")
RATE_LIMITED_TOTAL = Counter("rate_limited_total", "Total rate limited requests")


def metric_path(request: Request) -> str:
    # Use the matched route template to keep label cardinality bounded
    route = request.scope.get("route")
    path_format = getattr(route, "path_format", None) or getattr(route, "path", None)
    return path_format or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time

        status_code = str(response.status_code)
        method = request.method
        path = metric_path(request)

        HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status=status_code).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(process_time)

        return response

def metrics_endpoint(request: Request):
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
