"""FastAPI application exposing the allocation engine.

Run with ``uvicorn saleengine.app.api:app``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request, Response, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from saleengine import __version__
from saleengine.domain.errors import (
    AuthorizationError,
    ConflictError,
    EngineError,
    ExternalServiceError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from saleengine.domain.models import LineEntryStatus
from saleengine.infrastructure.observability import (
    configure_tracing_from_config,
    format_prometheus,
    get_logger,
)
from saleengine.services.dto import (
    BidDTO,
    BidRequestDTO,
    LineEntryDTO,
    LineStartDTO,
    LineStatusDTO,
    NotificationResultDTO,
    OrganizerRequestDTO,
    RunnerStartRequestDTO,
    SettlementReportDTO,
    SoldItemDTO,
    SweepRequestDTO,
)
from saleengine.services.settlement import SettlementReport

from .config import load_settings
from .dependencies import (
    BidLedgerDep,
    LineQueueDep,
    QueueControllerDep,
    SettlementRunnerDep,
    SettlementSchedulerDep,
    event_bus,
    shutdown_engine,
)

_logger = get_logger(__name__)

# Checked in order; subclasses of ConflictError etc. resolve to their parent.
_STATUS_BY_ERROR: list[tuple[type[EngineError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
]


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_tracing_from_config(load_settings().tracing)
    yield
    await shutdown_engine()


app = FastAPI(title="Saleengine API", version=__version__, lifespan=lifespan)


@app.exception_handler(EngineError)
async def engine_error_handler(_: Request, exc: EngineError) -> JSONResponse:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        _logger.error("Request failed: %s", exc)
    content: dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__}
    minimum = getattr(exc, "minimum", None)
    if minimum is not None:
        content["minimum"] = minimum
    return JSONResponse(status_code=status_code, content=content)


class MinimumBidResponse(BaseModel):
    item_id: str
    minimum_bid: float


class RunnerStatusResponse(BaseModel):
    status: str
    interval_seconds: float | None = None
    current_run_started_at: str | None = None
    last_report: SettlementReportDTO | None = None
    last_error: str | None = None
    runs_completed: int = 0
    paused_at: str | None = None


def _report_dto(report: SettlementReport) -> SettlementReportDTO:
    return SettlementReportDTO(
        closed=report.closed,
        sold=[
            SoldItemDTO(item_id=sold.item_id, user_id=sold.user_id, amount=sold.amount)
            for sold in report.sold
        ],
        failed=report.failed,
    )


def _organizer(request: OrganizerRequestDTO | None) -> str | None:
    return request.organizer_id if request is not None else None


@app.get("/")
async def root():
    """API root endpoint with version and links."""
    return {
        "name": "Saleengine API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "bids": "/items/{item_id}/bids",
            "settlement": "/settlement/sweep",
            "settlement_runner": "/settlement/runner/status",
            "line": "/sales/{sale_id}/line",
            "metrics": "/metrics",
            "websocket": "/ws/events",
        },
    }


# --- Bidding ---


@app.post(
    "/items/{item_id}/bids",
    status_code=status.HTTP_201_CREATED,
    response_model=BidDTO,
)
async def place_bid(item_id: str, request: BidRequestDTO, ledger: BidLedgerDep) -> BidDTO:
    bid = await run_in_threadpool(ledger.place_bid, item_id, request.user_id, request.amount)
    payload = BidDTO.from_model(bid)
    await event_bus.publish({"type": "bid_placed", **payload.model_dump(mode="json")})
    return payload


@app.get("/items/{item_id}/bids", response_model=list[BidDTO])
async def list_bids(item_id: str, ledger: BidLedgerDep, limit: int = 100) -> list[BidDTO]:
    bids = await run_in_threadpool(ledger.list_bids, item_id, limit)
    return [BidDTO.from_model(bid) for bid in bids]


@app.get("/items/{item_id}/minimum-bid", response_model=MinimumBidResponse)
async def minimum_bid(item_id: str, ledger: BidLedgerDep) -> MinimumBidResponse:
    value = await run_in_threadpool(ledger.minimum_bid, item_id)
    return MinimumBidResponse(item_id=item_id, minimum_bid=value)


# --- Settlement ---


@app.post("/settlement/sweep", response_model=SettlementReportDTO)
async def run_settlement_sweep(
    scheduler: SettlementSchedulerDep, request: SweepRequestDTO | None = None
) -> SettlementReportDTO:
    now = request.now if request is not None else None
    report = await run_in_threadpool(scheduler.run_settlement_sweep, now)
    return _report_dto(report)


@app.post("/settlement/reconcile", response_model=SettlementReportDTO)
async def reconcile_settlements(scheduler: SettlementSchedulerDep) -> SettlementReportDTO:
    report = await run_in_threadpool(scheduler.reconcile)
    return _report_dto(report)


@app.post(
    "/settlement/runner/start",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RunnerStatusResponse,
)
async def start_settlement_runner(
    runner: SettlementRunnerDep, request: RunnerStartRequestDTO | None = None
) -> RunnerStatusResponse:
    interval = request.interval_seconds if request is not None else None
    try:
        await runner.start(interval)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return RunnerStatusResponse(**runner.get_status())


@app.post(
    "/settlement/runner/pause",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RunnerStatusResponse,
)
async def pause_settlement_runner(runner: SettlementRunnerDep) -> RunnerStatusResponse:
    await runner.pause()
    return RunnerStatusResponse(**runner.get_status())


@app.post(
    "/settlement/runner/stop",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RunnerStatusResponse,
)
async def stop_settlement_runner(runner: SettlementRunnerDep) -> RunnerStatusResponse:
    await runner.stop()
    return RunnerStatusResponse(**runner.get_status())


@app.get("/settlement/runner/status", response_model=RunnerStatusResponse)
async def get_settlement_runner_status(runner: SettlementRunnerDep) -> RunnerStatusResponse:
    return RunnerStatusResponse(**runner.get_status())


# --- Line ---


@app.post(
    "/sales/{sale_id}/line/start",
    status_code=status.HTTP_201_CREATED,
    response_model=LineStartDTO,
)
async def start_line(
    sale_id: str, queue: LineQueueDep, request: OrganizerRequestDTO | None = None
) -> LineStartDTO:
    result = await run_in_threadpool(
        queue.start_line, sale_id, None, _organizer(request)
    )
    entries = [LineEntryDTO.from_model(entry) for entry in result.entries]
    await event_bus.publish(
        {"type": "line_started", "sale_id": sale_id, "entries": len(entries)}
    )
    return LineStartDTO(
        entries=entries,
        notified=result.notifications.delivered_count,
        failed_notifications=[
            NotificationResultDTO(
                user_id=failure.user_id, delivered=False, reason=failure.reason
            )
            for failure in result.notifications.failed
        ],
    )


@app.post("/sales/{sale_id}/line/next", response_model=LineEntryDTO)
async def call_next(
    sale_id: str,
    controller: QueueControllerDep,
    request: OrganizerRequestDTO | None = None,
) -> LineEntryDTO:
    entry = await run_in_threadpool(
        controller.call_next, sale_id, None, _organizer(request)
    )
    return await _publish_entry(LineEntryDTO.from_model(entry))


@app.post("/line-entries/{entry_id}/served", response_model=LineEntryDTO)
async def mark_served(
    entry_id: int,
    controller: QueueControllerDep,
    request: OrganizerRequestDTO | None = None,
) -> LineEntryDTO:
    entry = await run_in_threadpool(
        controller.mark_served, entry_id, None, _organizer(request)
    )
    return await _publish_entry(LineEntryDTO.from_model(entry))


@app.post("/line-entries/{entry_id}/cancel", response_model=LineEntryDTO)
async def cancel_entry(
    entry_id: int,
    controller: QueueControllerDep,
    request: OrganizerRequestDTO | None = None,
) -> LineEntryDTO:
    entry = await run_in_threadpool(
        controller.cancel, entry_id, None, _organizer(request)
    )
    return await _publish_entry(LineEntryDTO.from_model(entry))


@app.get("/sales/{sale_id}/line", response_model=LineStatusDTO)
async def get_line_status(sale_id: str, controller: QueueControllerDep) -> LineStatusDTO:
    entries = await run_in_threadpool(controller.get_status, sale_id)
    called = next(
        (entry for entry in entries if entry.status == LineEntryStatus.CALLED), None
    )
    return LineStatusDTO(
        sale_id=sale_id,
        entries=[LineEntryDTO.from_model(entry) for entry in entries],
        waiting=sum(1 for entry in entries if entry.status == LineEntryStatus.WAITING),
        called=LineEntryDTO.from_model(called) if called is not None else None,
    )


async def _publish_entry(entry: LineEntryDTO) -> LineEntryDTO:
    await event_bus.publish(
        {"type": "line_entry_updated", **entry.model_dump(mode="json")}
    )
    return entry


# --- Observability ---


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus text exposition of engine counters."""
    return Response(
        content=format_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


@app.websocket("/ws/events")
async def events_websocket(websocket: WebSocket) -> None:
    await event_bus.subscribe(websocket, __version__)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await event_bus.unsubscribe(websocket)
