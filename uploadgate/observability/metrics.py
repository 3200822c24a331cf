# uploadgate/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])

mpu_counter = Counter(
    "uploadgate_multipart_total",
    "Aantal multipart operaties",
    ["operation", "result"],  # create|list_parts|sign|sign_batch|complete|abort ; success|<error code>
)

signed_parts_counter = Counter(
    "uploadgate_signed_parts_total",
    "Aantal uitgegeven presigned part-URLs",
)

latency_hist = Histogram(
    "uploadgate_multipart_latency_seconds",
    "Latency per multipart operatie",
    ["operation"],
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
