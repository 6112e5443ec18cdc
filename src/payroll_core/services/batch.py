"""Bounded worker pool for per-employee batch actions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from payroll_core.exceptions import PayrollError

logger = logging.getLogger(__name__)


class UnitOutcome(str, Enum):
    """Non-failing unit outcomes; failures are raised."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"


@dataclass
class BatchError:
    employee_id: UUID
    message: str
    code: str = "ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {"employee_id": str(self.employee_id), "message": self.message, "code": self.code}


@dataclass
class BatchReport:
    """Aggregate outcome of a batch; never a bare pass/fail."""

    action: str
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    errors: list[BatchError] = field(default_factory=list)
    succeeded_ids: list[UUID] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def record_success(self, employee_id: UUID) -> None:
        self.succeeded += 1
        self.succeeded_ids.append(employee_id)

    def record_failure(self, employee_id: UUID, message: str, code: str = "ERROR") -> None:
        self.failed += 1
        self.errors.append(BatchError(employee_id=employee_id, message=message, code=code))

    def record_skip(self) -> None:
        self.skipped += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "errors": [e.to_dict() for e in self.errors],
        }


class BatchCancellation:
    """Best-effort cancellation token checked between units."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


UnitFn = Callable[[UUID], Awaitable[UnitOutcome]]


async def run_bounded(
    action: str,
    employee_ids: Iterable[UUID],
    unit: UnitFn,
    concurrency: int,
    cancellation: BatchCancellation | None = None,
) -> BatchReport:
    """Run ``unit`` for every employee with at most ``concurrency`` in flight.

    A unit returns its outcome or raises. PayrollError becomes a failure with
    its message; any other exception is logged and also becomes a failure, so
    one employee never aborts the batch. After cancellation no new unit starts,
    in-flight units finish, and the rest count as skipped.
    """
    report = BatchReport(action=action)
    semaphore = asyncio.Semaphore(max(1, concurrency))
    tasks: list[asyncio.Task[None]] = []
    ids = list(employee_ids)

    async def _run(employee_id: UUID) -> None:
        try:
            outcome = await unit(employee_id)
        except PayrollError as e:
            logger.warning(
                "batch unit failed action=%s employee_id=%s code=%s message=%s",
                action, employee_id, e.code, e.message,
            )
            report.record_failure(employee_id, e.message, e.code)
        except Exception as e:
            logger.exception("batch unit crashed action=%s employee_id=%s", action, employee_id)
            report.record_failure(employee_id, f"Unexpected error: {e}", "INTERNAL_ERROR")
        else:
            if outcome == UnitOutcome.SKIPPED:
                report.record_skip()
            else:
                report.record_success(employee_id)
        finally:
            semaphore.release()

    for index, employee_id in enumerate(ids):
        await semaphore.acquire()
        if cancellation is not None and cancellation.cancelled:
            semaphore.release()
            report.cancelled = True
            for _ in ids[index:]:
                report.record_skip()
            break
        tasks.append(asyncio.create_task(_run(employee_id)))

    if tasks:
        await asyncio.gather(*tasks)

    logger.info(
        "batch finished action=%s succeeded=%d failed=%d skipped=%d cancelled=%s",
        action, report.succeeded, report.failed, report.skipped, report.cancelled,
    )
    return report
