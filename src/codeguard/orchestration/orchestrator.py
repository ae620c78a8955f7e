"""Request orchestrator: queueing, dispatch and resilient execution.

Accepts analysis submissions, queues them by priority, and dispatches at
most ``max_concurrent_requests`` at a time. Each dispatched request runs
through the retry combinator, and every attempt goes through the
endpoint's circuit breaker, so the breaker sees each individual failure.
Successful results are validated and curated (quality gate, false-positive
filtering, threat-intel prioritization) before the request completes.

All state lives on one event loop; nothing here takes locks.

Provides:
- RequestOrchestrator: submit / cancel / wait / status / connection probe
"""

import asyncio
import time
from typing import Any, Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError

from codeguard.client.backend import AnalysisBackend
from codeguard.client.http_backend import HttpAnalysisBackend
from codeguard.core.config import Config, load_config
from codeguard.core.curation import FalsePositiveDetector, IntelligencePrioritizer, QualityGate
from codeguard.core.errors import AnalysisError, ErrorKind
from codeguard.core.models import (
    AnalysisPayload,
    AnalysisResult,
    CuratedReport,
    HealthCheckResult,
)
from codeguard.core.persistence.cache import ResultCache, cache_key
from codeguard.core.queue import Priority, PriorityQueue
from codeguard.core.resilience import (
    CircuitBreakerRegistry,
    CircuitBreakerStats,
    RetryResult,
    run_with_retry,
)
from codeguard.core.validation import parse_analysis_result

from .requests import AnalysisRequest, QueueStatus, RequestState, generate_request_id

logger = structlog.get_logger()


class RequestOrchestrator:
    """Owns the request queue and drives requests to a terminal state.

    Collaborators are passed in; anything omitted gets a fresh default
    instance owned by this orchestrator.

    Args:
        config: Configuration snapshot (defaults to load_config())
        backend: Analysis service (defaults to HttpAnalysisBackend(config))
        registry: Circuit breakers keyed by endpoint
        detector: False-positive detector
        gate: Quality gate for enhanced reports
        prioritizer: Threat-intel prioritizer
        cache: Optional result cache for single-file payloads
        clock: Epoch-seconds time source for bookkeeping

    Example:
        >>> orchestrator = RequestOrchestrator(load_config())
        >>> request_id = orchestrator.submit({"code": src, "language": "python"}, "high")
        >>> request = await orchestrator.wait(request_id)
        >>> request.state, request.result
    """

    def __init__(
        self,
        config: Config | None = None,
        backend: AnalysisBackend | None = None,
        *,
        registry: CircuitBreakerRegistry | None = None,
        detector: FalsePositiveDetector | None = None,
        gate: QualityGate | None = None,
        prioritizer: IntelligencePrioritizer | None = None,
        cache: ResultCache | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or load_config()
        self._owns_backend = backend is None
        self.backend: AnalysisBackend = backend or HttpAnalysisBackend(self.config)
        self.registry = registry or CircuitBreakerRegistry(clock=clock)
        self.detector = detector or FalsePositiveDetector()
        self.gate = gate or QualityGate()
        self.prioritizer = prioritizer or IntelligencePrioritizer()
        self.cache = cache
        self._clock = clock

        self._queue: PriorityQueue[AnalysisRequest] = PriorityQueue()
        self._requests: dict[str, AnalysisRequest] = {}
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._pump_scheduled = False
        self.log = logger.bind(component="orchestrator")

    # Submission and control

    def submit(
        self,
        payload: AnalysisPayload | dict[str, Any],
        priority: Priority | str = Priority.NORMAL,
        request_id: str | None = None,
    ) -> str:
        """Queue a payload for analysis and return its request id.

        Must be called from a running event loop. Dispatch happens on the
        next loop iteration, so the request is observable as pending until
        the caller yields.

        Raises:
            AnalysisError: PERMANENT_REQUEST when the queue is full
            ValueError: When ``request_id`` is already tracked
            pydantic.ValidationError: When a dict payload is malformed
        """
        if not isinstance(payload, AnalysisPayload):
            payload = AnalysisPayload.model_validate(payload)

        self._purge_expired()

        if len(self._queue) >= self.config.max_queue_size:
            raise AnalysisError(
                f"Request queue is full ({self.config.max_queue_size} pending)",
                ErrorKind.PERMANENT_REQUEST,
                user_message="Too many analyses are waiting. Try again shortly.",
                details={"max_queue_size": self.config.max_queue_size},
            )

        request_id = request_id or generate_request_id()
        if request_id in self._requests:
            raise ValueError(f"Request {request_id} already exists")

        request = AnalysisRequest(
            id=request_id,
            payload=payload,
            priority=Priority.coerce(priority),
            created_at=self._clock(),
        )
        self._requests[request_id] = request
        self._queue.enqueue(request, request.priority)

        self.log.info(
            "request_submitted",
            request_id=request_id,
            priority=request.priority.value,
            project=payload.is_project,
            pending=len(self._queue),
        )
        self._schedule_pump()
        return request_id

    def cancel(self, request_id: str) -> bool:
        """Cancel a pending or active request.

        A pending request leaves the queue and never reaches the backend.
        An active request keeps its slot until the in-flight call settles;
        the result is then discarded and the request becomes cancelled.
        Unknown, finished or already cancelling requests are ignored.

        Returns:
            True if the request was cancelled by this call
        """
        request = self._requests.get(request_id)
        if request is None or request.is_terminal or request.cancel_requested:
            return False

        if request.state == RequestState.PENDING:
            self._queue.remove(lambda r: r.id == request_id)
            self._settle(request, RequestState.CANCELLED, error=AnalysisError.cancelled(request_id))
        else:
            request.cancel_requested = True
            request.error = AnalysisError.cancelled(request_id)
            self.log.info("request_cancelled", request_id=request_id, while_active=True)
        return True

    def retry_failed(self, request_id: str) -> None:
        """Re-queue a failed request at its original priority.

        Raises:
            KeyError: Unknown request id
            ValueError: Request is not in the failed state
        """
        request = self._requests.get(request_id)
        if request is None:
            raise KeyError(f"Request {request_id} not found")
        if request.state != RequestState.FAILED:
            raise ValueError(f"Request {request_id} is not in failed state")

        request.state = RequestState.PENDING
        request.attempts = 0
        request.error = None
        request.result = None
        request.cancel_requested = False
        request.started_at = None
        request.finished_at = None
        request.done.clear()
        self._queue.enqueue(request, request.priority)

        self.log.info("request_requeued", request_id=request_id, priority=request.priority.value)
        self._schedule_pump()

    async def wait(self, request_id: str, timeout: float | None = None) -> AnalysisRequest:
        """Wait for a request to settle, then stop tracking it.

        Raises:
            KeyError: Unknown request id
            asyncio.TimeoutError: ``timeout`` elapsed first (request stays tracked)
        """
        request = self._requests.get(request_id)
        if request is None:
            raise KeyError(f"Request {request_id} not found")

        await asyncio.wait_for(request.done.wait(), timeout)
        self.forget(request_id)
        return request

    def forget(self, request_id: str) -> None:
        """Drop a finished request from bookkeeping."""
        request = self._requests.get(request_id)
        if request is not None and request.is_terminal and request.done.is_set():
            del self._requests[request_id]

    def get_request(self, request_id: str) -> AnalysisRequest | None:
        return self._requests.get(request_id)

    def get_status(self) -> QueueStatus:
        """Counts recomputed from the tracked requests."""
        self._purge_expired()
        status = QueueStatus(pending=len(self._queue))
        for request in self._requests.values():
            if request.state == RequestState.ACTIVE:
                status.active += 1
            elif request.state == RequestState.COMPLETED:
                status.completed += 1
            elif request.state == RequestState.FAILED:
                status.failed += 1
        return status

    def get_breaker_stats(
        self, endpoint: str | None = None
    ) -> CircuitBreakerStats | dict[str, CircuitBreakerStats] | None:
        """Stats for one endpoint, or for every endpoint seen so far."""
        if endpoint is not None:
            return self.registry.get_stats(endpoint.rstrip("/"))
        return self.registry.get_all_stats()

    def update_config(self, config: Config) -> None:
        """Apply a new configuration snapshot to later dispatches.

        Requests already in flight keep the snapshot they started with.
        Breakers keep the options they were created with.
        """
        self.config = config
        if self._owns_backend:
            self.backend = HttpAnalysisBackend(config)
        self.log.info("config_updated", endpoint=config.normalized_endpoint)
        self._schedule_pump()

    async def test_connection(self) -> HealthCheckResult:
        """Probe the backend's health endpoint. Never raises."""
        try:
            self.config.validate_endpoint()
        except AnalysisError as e:
            return HealthCheckResult(healthy=False, message=e.message)

        start = time.monotonic()
        try:
            data = await self.backend.health()
        except Exception as e:
            self.log.warning("health_check_failed", error=str(e))
            message = e.message if isinstance(e, AnalysisError) else str(e)
            return HealthCheckResult(
                healthy=False,
                message=message or "Unable to reach analysis service health endpoint",
                response_time=time.monotonic() - start,
            )

        version = data.get("version") if isinstance(data, dict) else None
        return HealthCheckResult(
            healthy=True,
            message="Service is healthy",
            response_time=time.monotonic() - start,
            version=str(version) if version is not None else None,
        )

    async def close(self) -> None:
        """Cancel queued requests and wait for in-flight ones to settle."""
        while (request := self._queue.peek()) is not None:
            self.cancel(request.id)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # Dispatch

    def _schedule_pump(self) -> None:
        if self._pump_scheduled:
            return
        self._pump_scheduled = True
        asyncio.get_running_loop().call_soon(self._pump)

    def _pump(self) -> None:
        self._pump_scheduled = False
        while not self._queue.is_empty() and len(self._in_flight) < self.config.max_concurrent_requests:
            request = self._queue.dequeue()
            request.state = RequestState.ACTIVE
            request.started_at = self._clock()
            self._in_flight.add(request.id)

            task = asyncio.get_running_loop().create_task(self._run(request))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

            self.log.debug(
                "request_dispatched",
                request_id=request.id,
                active=len(self._in_flight),
                pending=len(self._queue),
            )

    async def _run(self, request: AnalysisRequest) -> None:
        try:
            try:
                outcome = await self._execute(request)
            except Exception as e:
                self.log.exception("request_crashed", request_id=request.id)
                outcome = RetryResult(success=False, attempts=request.attempts, error=e)

            if request.cancel_requested:
                self._settle(request, RequestState.CANCELLED, error=request.error)
            elif outcome.success:
                self._settle(request, RequestState.COMPLETED, result=outcome.value)
            else:
                self._settle(request, RequestState.FAILED, error=outcome.error)
        except asyncio.CancelledError:
            self._settle(request, RequestState.CANCELLED, error=AnalysisError.cancelled(request.id))
            raise
        finally:
            self._in_flight.discard(request.id)
            self._schedule_pump()

    async def _execute(self, request: AnalysisRequest) -> RetryResult[AnalysisResult]:
        config = self.config
        log = self.log.bind(request_id=request.id)

        try:
            endpoint = config.validate_endpoint()
        except AnalysisError as e:
            return RetryResult(success=False, attempts=0, error=e)

        payload = request.payload
        mode = str(payload.options.get("mode") or config.analysis_mode)

        key = None
        if self.cache is not None and not payload.is_project:
            key = cache_key(endpoint, mode, payload.language, payload.code)
            hit = await self._cache_get(key)
            if hit is not None:
                log.info("request_cache_hit")
                return RetryResult(
                    success=True,
                    attempts=0,
                    value=hit.model_copy(update={"request_id": request.id}),
                )

        breaker_options = config.breaker_options()

        async def call_backend() -> dict[str, Any]:
            return await self.backend.analyze(payload, request_id=request.id, mode=mode)

        async def attempt() -> dict[str, Any]:
            if request.cancel_requested:
                raise AnalysisError.cancelled(request.id)
            request.attempts += 1
            return await self.registry.execute(endpoint, call_backend, breaker_options)

        outcome = await run_with_retry(attempt, **config.retry_options())
        if not outcome.success:
            log.warning(
                "request_failed",
                attempts=outcome.attempts,
                error=str(outcome.error),
                kind=getattr(getattr(outcome.error, "kind", None), "value", None),
            )
            return outcome

        result = parse_analysis_result(
            outcome.value,
            request.id,
            project=payload.is_project,
            file_count=len(payload.files or []),
        )
        result = self.curate(result, full_code=payload.code)

        if key is not None and not request.cancel_requested:
            await self._cache_put(key, result, endpoint=endpoint, mode=mode, language=payload.language)

        log.info("request_completed", attempts=outcome.attempts, curated=result.curated is not None)
        return RetryResult(success=True, attempts=outcome.attempts, value=result)

    # Curation

    def curate(self, result: AnalysisResult, full_code: str | None = None) -> AnalysisResult:
        """Attach the curated view of an enhanced report.

        A report rejected by the quality gate leaves the basic result
        untouched. An accepted one is filtered for false positives and
        ranked by priority.
        """
        report = result.report
        if report is None:
            return result

        if not self.gate.should_display(report):
            self.log.info(
                "enhanced_report_fallback",
                request_id=result.request_id,
                findings=len(report.vulnerabilities),
            )
            return result

        quality = self.gate.get_quality_report(report)
        filtered = self.detector.filter_findings(report.vulnerabilities, full_code)
        prioritized = self.prioritizer.prioritize_report(filtered.filtered)
        intelligence = self.prioritizer.get_intelligence_summary(prioritized)

        if intelligence.cisa_kev_count:
            self.log.info("cisa_kev_findings", count=intelligence.cisa_kev_count)

        summary = report.summary.model_copy(update={"total_vulnerabilities": len(prioritized)})
        return result.model_copy(
            update={
                "report": report.model_copy(update={"summary": summary}),
                "curated": CuratedReport(
                    findings=prioritized,
                    removed=filtered.removed,
                    warned=filtered.warned,
                    quality=quality,
                    intelligence=intelligence,
                ),
            }
        )

    # Bookkeeping

    def _settle(
        self,
        request: AnalysisRequest,
        state: RequestState,
        *,
        result: AnalysisResult | None = None,
        error: Exception | None = None,
    ) -> None:
        request.state = state
        request.result = result
        request.error = error
        request.finished_at = self._clock()
        request.done.set()

        self.log.info(
            f"request_{state.value}",
            request_id=request.id,
            attempts=request.attempts,
            error=str(error) if error else None,
        )

    def _purge_expired(self) -> None:
        cutoff = self._clock() - self.config.retention_seconds
        expired = [
            request_id
            for request_id, request in self._requests.items()
            if request.is_terminal
            and request.done.is_set()
            and request.finished_at is not None
            and request.finished_at < cutoff
        ]
        for request_id in expired:
            del self._requests[request_id]

    async def _cache_get(self, key: str) -> AnalysisResult | None:
        try:
            return await self.cache.get(key)
        except SQLAlchemyError as e:
            self.log.warning("cache_read_failed", error=str(e))
            return None

    async def _cache_put(self, key: str, result: AnalysisResult, **fields: str) -> None:
        try:
            await self.cache.put(key, result, **fields)
        except SQLAlchemyError as e:
            self.log.warning("cache_write_failed", error=str(e))
