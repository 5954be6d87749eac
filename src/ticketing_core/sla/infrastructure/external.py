"""
SLA External Service Integrations
==================================

External services for the lifecycle engine:
- Webhook notification delivery
- APScheduler for the recurring compliance pass and auto-close
"""

import asyncio
import time
import uuid
from typing import Any, Dict, Mapping, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ticketing_core.config import NotificationType
from ticketing_core.shared.infrastructure.logging import (
    bind_correlation_id,
    correlation_id_var,
    get_logger,
)
from ticketing_core.sla.application import (
    ComplianceMonitor,
    INotificationDispatcher,
    TicketService,
)
from ticketing_core.sla.domain import utcnow

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED
        self._opened_at = None

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotificationDispatcher(INotificationDispatcher):
    """
    Posts notifications to a webhook as JSON, with circuit breaker and retry.

    Delivery is fire-and-forget for callers: every failure is logged and
    swallowed here. Without a configured URL notifications are only logged.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    @staticmethod
    def _build_message(user_id: str, kind: NotificationType, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "type": kind.value,
            "sent_at": utcnow().isoformat(),
            "correlation_id": correlation_id_var.get(),
            "data": dict(payload),
        }

    async def notify(self, user_id: str, kind: NotificationType, payload: Mapping[str, Any]) -> None:
        if not self._webhook_url:
            logger.debug(
                "Notification webhook not configured, skipping delivery",
                extra={"user_id": user_id, "kind": kind.value, "ticket_id": payload.get("ticket_id")}
            )
            return

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"user_id": user_id, "kind": kind.value, "ticket_id": payload.get("ticket_id")}
            )
            return

        message = self._build_message(user_id, kind, payload)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Notification delivered",
                        extra={"user_id": user_id, "kind": kind.value, "ticket_id": payload.get("ticket_id")}
                    )
                    return

                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Notification delivery failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": payload.get("ticket_id")}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_seconds * 2 ** attempt)

        self._circuit_breaker.record_failure()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class ComplianceScheduler:
    """
    Wrapper for APScheduler running the compliance pass and auto-close.

    Manages the lifecycle of the scheduler and jobs. Each tick runs to
    completion on its own; APScheduler's max_instances=1 and the monitor's
    own guard both keep passes from overlapping.
    """

    def __init__(
        self,
        monitor: ComplianceMonitor,
        ticket_service: Optional[TicketService] = None,
        interval_minutes: int = 15,
        auto_close_enabled: bool = False
    ):
        self.interval_minutes = interval_minutes
        self._monitor = monitor
        self._ticket_service = ticket_service
        self._auto_close_enabled = auto_close_enabled
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def _compliance_job(self) -> None:
        with bind_correlation_id(f"compliance-{uuid.uuid4().hex[:12]}"):
            await self._run_guarded("Compliance pass failed", self._monitor.run_once)

    async def _auto_close_job(self) -> None:
        with bind_correlation_id(f"auto-close-{uuid.uuid4().hex[:12]}"):
            await self._run_guarded("Auto-close job failed", self._ticket_service.auto_close_resolved)

    @staticmethod
    async def _run_guarded(failure_message: str, job) -> None:
        try:
            await job()
        except Exception as e:
            logger.error(
                failure_message,
                extra={"error": str(e), "error_type": type(e).__name__}
            )

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            logger.warning("Compliance scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")

        self._scheduler.add_job(
            self._compliance_job,
            "interval",
            minutes=self.interval_minutes,
            id="sla_compliance",
            name="SLA Compliance Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        if self._auto_close_enabled and self._ticket_service is not None:
            self._scheduler.add_job(
                self._auto_close_job,
                "cron",
                hour=0,
                minute=0,
                id="auto_close_resolved",
                name="Auto-close Resolved Tickets",
                max_instances=1,
                replace_existing=True
            )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Compliance scheduler started",
            extra={
                "interval_minutes": self.interval_minutes,
                "auto_close_enabled": self._auto_close_enabled
            }
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Compliance scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
