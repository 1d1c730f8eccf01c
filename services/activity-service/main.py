#!/usr/bin/env python3
"""
Bluesky Activity Service

Serves an account's notification activity as a multi-resolution timeline.
Provides health check and metrics endpoints.
"""

import logging
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response
import uvicorn
import structlog

from activity_aggregator import Clock, SystemClock, build_activity_summary
from activity_collector import collect_notifications, resolve_account_creation_date
from bluesky_client import BlueskyActivityClient
from config import create_activity_service_config
from errors import MissingCredential, UpstreamFailure
from session import RequestContext, resolve_request_context
from shared.models import ActivitySummary, NotificationPage

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

# Prometheus metrics
ACTIVITY_REQUESTS = Counter('activity_requests_total', 'Activity requests by outcome', ['outcome'])
NOTIFICATIONS_AGGREGATED = Counter('activity_notifications_aggregated_total', 'Notifications aggregated')
PAGES_FETCHED = Counter('activity_notification_pages_fetched_total', 'Notification pages fetched')
PIPELINE_TIME = Histogram('activity_pipeline_seconds', 'Time spent producing an activity summary')

settings = create_activity_service_config()
clock: Clock = SystemClock()

app = FastAPI(title="Bluesky Activity", version="1.0.0")


async def produce_activity_summary(context: RequestContext) -> ActivitySummary:
    """Collect, resolve and aggregate the caller's notifications.

    Raises:
        UpstreamFailure: If listing notifications fails
    """
    log = logger.bind(pds_url=context.pds_url, did=context.did)
    client = BlueskyActivityClient(context.pds_url)

    async def fetch_page(cursor: Optional[str]) -> NotificationPage:
        page = await client.list_notifications(context.access_jwt, settings.page_limit, cursor)
        PAGES_FETCHED.inc()
        return page

    async def lookup_profile(did: str):
        return await client.get_profile(context.access_jwt, did)

    def log_lookup_failure(error: Exception) -> None:
        log.warning("Unable to resolve profile creation date from Bluesky profile", error=str(error))

    try:
        events = await collect_notifications(fetch_page)
        now = clock.now()
        origin = await resolve_account_creation_date(
            events,
            now,
            did=context.did,
            lookup_profile=lookup_profile,
            on_lookup_failure=log_lookup_failure
        )
        summary = build_activity_summary(events, origin, now)
    finally:
        await client.close()

    NOTIFICATIONS_AGGREGATED.inc(len(events))
    log.info("Produced activity timeline", notifications=len(events), origin=origin.isoformat())
    return summary


@app.get("/")
@app.get("/activity")
async def activity(request: Request) -> JSONResponse:
    """Activity timeline for the signed-in account."""
    try:
        context = resolve_request_context(
            request.headers,
            request.query_params,
            request.cookies.get("session"),
            default_pds_url=settings.default_pds_url
        )
    except MissingCredential as e:
        ACTIVITY_REQUESTS.labels(outcome="unauthorized").inc()
        return JSONResponse({"error": e.public_message}, status_code=e.status_code)

    started = time.perf_counter()
    try:
        summary = await produce_activity_summary(context)
    except Exception as e:
        ACTIVITY_REQUESTS.labels(outcome="upstream_failure").inc()
        logger.error(
            "Failed to produce activity timeline",
            pds_url=context.pds_url,
            did=context.did,
            error=str(e),
            exc_info=True
        )
        return JSONResponse({"error": UpstreamFailure.public_message}, status_code=UpstreamFailure.status_code)
    finally:
        PIPELINE_TIME.observe(time.perf_counter() - started)

    ACTIVITY_REQUESTS.labels(outcome="ok").inc()
    return JSONResponse(summary.to_dict(), headers={"Cache-Control": "no-store"})


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    """Liveness check."""
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def main() -> None:
    """Main application entry point."""
    logging.basicConfig(format="%(message)s", level=settings.log_level)

    logger.info(
        "Starting Bluesky Activity service...",
        host=settings.host,
        port=settings.port,
        default_pds_url=settings.default_pds_url,
        page_limit=settings.page_limit
    )

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
