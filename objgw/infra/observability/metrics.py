from prometheus_client import Counter, Histogram, make_asgi_app

# Route label uses the template (/api/v1/objects/{key:path}) to keep cardinality low.
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

MULTIPART_UPLOADS = Counter(
    "multipart_uploads_total",
    "Multipart uploads by terminal outcome",
    ["outcome"],
)

MULTIPART_PARTS = Counter(
    "multipart_parts_total",
    "Multipart part upload attempts by result",
    ["result"],
)

MULTIPART_DURATION = Histogram(
    "multipart_upload_duration_seconds",
    "Wall time of a multipart upload from initiation to terminal state",
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300, 600),
)

metrics_app = make_asgi_app()
