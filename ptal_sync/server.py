"""Inbound HTTP surface: GitHub webhooks and health checks.

Webhook deliveries are authenticated (X-Hub-Signature-256) and de-duplicated
(X-GitHub-Delivery) here, before they reach the event router. Routing runs as
a background task so GitHub gets its response immediately.
"""

import hashlib
import hmac
import json
import logging
from collections import OrderedDict
from typing import Any

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from ptal_sync.database import DatabaseConnectionManager
from ptal_sync.ptal import EventRouter, PullRequestEvent, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_PATH = "/webhooks/github"
DEFAULT_DELIVERY_CACHE_SIZE = 1024


def verify_github_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Verify a GitHub webhook ``X-Hub-Signature-256`` header."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


class DeliveryDeduplicator:
    """Remembers the most recent webhook delivery IDs."""

    def __init__(self, max_size: int = DEFAULT_DELIVERY_CACHE_SIZE):
        self.max_size = max_size
        self._seen: OrderedDict[str, None] = OrderedDict()

    def check_and_remember(self, delivery_id: str) -> bool:
        """Record a delivery ID.

        Returns:
            True if the ID was already seen
        """
        if delivery_id in self._seen:
            self._seen.move_to_end(delivery_id)
            return True

        self._seen[delivery_id] = None
        if len(self._seen) > self.max_size:
            self._seen.popitem(last=False)
        return False

    def __len__(self) -> int:
        return len(self._seen)


async def _route_event(router: EventRouter, event: PullRequestEvent) -> None:
    try:
        result = await router.handle(event)
        logger.info(
            f"Handled '{event.kind}' for {event.identity}: "
            f"{result.matched} matched, {result.failed} failed",
            extra={"delivery_id": event.delivery_id},
        )
    except Exception as e:
        logger.error(
            f"Failed to route '{event.kind}' for {event.identity}: {e}",
            extra={"delivery_id": event.delivery_id},
        )


def attach_router(app: FastAPI, router: EventRouter) -> None:
    """Start accepting events; health turns green from here on."""
    app.state.router = router


def create_app(
    router: EventRouter | None = None,
    database: DatabaseConnectionManager | None = None,
    webhook_secret: str | None = None,
    webhook_path: str = DEFAULT_WEBHOOK_PATH,
    delivery_cache_size: int = DEFAULT_DELIVERY_CACHE_SIZE,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        router: Event router; may be attached later with ``attach_router``
        database: Connection manager checked by the health endpoint
        webhook_secret: Shared secret; signatures are not checked when None
        webhook_path: Path GitHub delivers webhooks to
        delivery_cache_size: Number of delivery IDs remembered for de-duplication

    Returns:
        Configured application
    """
    app = FastAPI(title="ptal-sync", docs_url=None, redoc_url=None)
    app.state.router = router
    app.state.deliveries = DeliveryDeduplicator(delivery_cache_size)

    async def health() -> JSONResponse:
        database_ok = await database.health_check() if database else True
        accepting = app.state.router is not None
        healthy = accepting and database_ok
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "ok" if healthy else "unavailable",
                "accepting_events": accepting,
                "database": database_ok,
            },
        )

    app.add_api_route("/", health, methods=["GET"])
    app.add_api_route("/health", health, methods=["GET"])

    async def github_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_github_event: str | None = Header(default=None),
        x_github_delivery: str | None = Header(default=None),
        x_hub_signature_256: str | None = Header(default=None),
    ) -> JSONResponse:
        body = await request.body()

        if webhook_secret and not verify_github_signature(
            body, x_hub_signature_256, webhook_secret
        ):
            logger.warning(
                "Rejected webhook with invalid signature",
                extra={"delivery_id": x_github_delivery},
            )
            raise HTTPException(status_code=401, detail="Invalid signature")

        router_ = app.state.router
        if router_ is None:
            raise HTTPException(status_code=503, detail="Not accepting events yet")

        if not x_github_event:
            raise HTTPException(status_code=400, detail="Missing X-GitHub-Event header")

        try:
            payload: Any = json.loads(body)
        except ValueError as e:
            raise HTTPException(status_code=400, detail="Body is not JSON") from e
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Body is not a JSON object")

        try:
            event = PullRequestEvent.from_webhook(
                x_github_event, payload, delivery_id=x_github_delivery
            )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        if event is None:
            logger.debug(f"Ignoring '{x_github_event}' event")
            return JSONResponse(status_code=200, content={"status": "ignored"})

        if x_github_delivery and app.state.deliveries.check_and_remember(
            x_github_delivery
        ):
            logger.info(f"Dropping duplicate delivery {x_github_delivery}")
            return JSONResponse(status_code=200, content={"status": "duplicate"})

        background_tasks.add_task(_route_event, router_, event)
        return JSONResponse(
            status_code=202,
            content={"status": "accepted", "delivery_id": x_github_delivery},
        )

    app.add_api_route(webhook_path, github_webhook, methods=["POST"])

    return app
