"""Periodic sweep over appointment time windows.

Each run captures ``now`` once and executes four independent passes:

- one_hour_reminder, [+55m, +65m]: Confirmed with the flag unset, remind the patient
- five_minute_reminder, [+5m, +10m]: Confirmed with the flag unset, remind patient and doctor
- completion, [-15m, -5m]: Confirmed -> Completed, ask the patient for feedback
- auto_cancel, [+55m, +65m]: Pending -> Cancelled, tell patient and doctor.
  The query also reaches back to records whose deadline already passed
  (down to -15m), so a late or skipped tick still cancels them.

Windows are wider than the sweep cadence so every appointment is seen by at
least one tick; the reminder flags and the status guard stop the following
tick from repeating the effect. Work is scoped per record: one failure is
logged and counted, never propagated.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple
import logging

from ...exceptions import InvalidTransition, PreconditionStale
from ..ports.appointments_repo import AppointmentDto, AppointmentsRepository, AppointmentStatus
from ...utils import utc_now
from .appointments_service import AppointmentsService, TransitionResult

logger = logging.getLogger(__name__)

ONE_HOUR_REMINDER = "one_hour_reminder"
FIVE_MINUTE_REMINDER = "five_minute_reminder"
COMPLETION = "completion"
AUTO_CANCEL = "auto_cancel"


@dataclass(frozen=True)
class SweepWindow:
    lower_minutes: int
    upper_minutes: int

    def bounds(self, now: datetime) -> Tuple[datetime, datetime]:
        return now + timedelta(minutes=self.lower_minutes), now + timedelta(minutes=self.upper_minutes)


@dataclass(frozen=True)
class SweepWindows:
    one_hour_reminder: SweepWindow = SweepWindow(55, 65)
    five_minute_reminder: SweepWindow = SweepWindow(5, 10)
    completion: SweepWindow = SweepWindow(-15, -5)
    auto_cancel: SweepWindow = SweepWindow(55, 65)
    # Overdue Pending records stay selectable until this long after their start
    auto_cancel_catch_up_minutes: int = 15

    def auto_cancel_query(self) -> SweepWindow:
        return SweepWindow(min(-self.auto_cancel_catch_up_minutes, self.auto_cancel.lower_minutes), self.auto_cancel.upper_minutes)

    @classmethod
    def from_settings(cls, settings) -> "SweepWindows":
        return cls(
            one_hour_reminder=SweepWindow(*settings.ONE_HOUR_REMINDER_WINDOW),
            five_minute_reminder=SweepWindow(*settings.FIVE_MINUTE_REMINDER_WINDOW),
            completion=SweepWindow(*settings.COMPLETION_WINDOW),
            auto_cancel=SweepWindow(*settings.AUTO_CANCEL_WINDOW),
            auto_cancel_catch_up_minutes=settings.AUTO_CANCEL_CATCH_UP_MINUTES,
        )


@dataclass
class PassReport:
    name: str
    scanned: int = 0
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    notified: int = 0
    query_failed: bool = False


@dataclass
class SweepReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    passes: Dict[str, PassReport] = field(default_factory=dict)

    @property
    def applied(self) -> int:
        return sum(p.applied for p in self.passes.values())

    @property
    def failed(self) -> int:
        return sum(p.failed for p in self.passes.values())

    @property
    def notified(self) -> int:
        return sum(p.notified for p in self.passes.values())

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "notified": self.notified,
            "passes": {name: vars(p) for name, p in self.passes.items()},
        }


class LifecycleSweeper:
    def __init__(
        self,
        service: AppointmentsService,
        repo: AppointmentsRepository,
        windows: SweepWindows = SweepWindows(),
        max_concurrency: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.service = service
        self.repo = repo
        self.windows = windows
        self.max_concurrency = max_concurrency
        self.clock = clock

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.clock()
        report = SweepReport(started_at=now)
        limiter = asyncio.Semaphore(self.max_concurrency)
        logger.info(f"Sweep started at {now.isoformat()}")

        passes = await asyncio.gather(
            self._run_pass(
                ONE_HOUR_REMINDER, self.windows.one_hour_reminder, AppointmentStatus.CONFIRMED, now, limiter,
                eligible=lambda a: not a.reminder_sent_one_hour,
                action=self.service.send_one_hour_reminder,
            ),
            self._run_pass(
                FIVE_MINUTE_REMINDER, self.windows.five_minute_reminder, AppointmentStatus.CONFIRMED, now, limiter,
                eligible=lambda a: not a.reminder_sent_five_minutes,
                action=self.service.send_five_minute_reminder,
            ),
            self._run_pass(
                COMPLETION, self.windows.completion, AppointmentStatus.CONFIRMED, now, limiter,
                action=lambda a: self.service.complete(a, now),
            ),
            self._run_pass(
                AUTO_CANCEL, self.windows.auto_cancel_query(), AppointmentStatus.PENDING, now, limiter,
                action=lambda a: self.service.auto_cancel(a, now),
            ),
        )
        for p in passes:
            report.passes[p.name] = p
        report.finished_at = self.clock()
        logger.info(
            "Sweep finished: "
            + ", ".join(f"{p.name} {p.applied}/{p.scanned}" for p in passes)
            + f", {report.notified} notified"
            + (f", {report.failed} failed" if report.failed else "")
        )
        return report

    async def _run_pass(
        self,
        name: str,
        window: SweepWindow,
        status: AppointmentStatus,
        now: datetime,
        limiter: asyncio.Semaphore,
        action: Callable[[AppointmentDto], TransitionResult],
        eligible: Callable[[AppointmentDto], bool] = lambda a: True,
    ) -> PassReport:
        report = PassReport(name=name)
        start, end = window.bounds(now)
        try:
            candidates: List[AppointmentDto] = await asyncio.to_thread(self.repo.find_in_window, status, start, end)
        except Exception:
            logger.exception(f"Sweep pass {name}: query failed, retrying on the next tick")
            report.query_failed = True
            return report

        report.scanned = len(candidates)
        todo = []
        for appt in candidates:
            if eligible(appt):
                todo.append(appt)
            else:
                report.skipped += 1
        await asyncio.gather(*(self._apply(name, appt, action, limiter, report) for appt in todo))
        return report

    async def _apply(
        self,
        name: str,
        appt: AppointmentDto,
        action: Callable[[AppointmentDto], TransitionResult],
        limiter: asyncio.Semaphore,
        report: PassReport,
    ) -> None:
        async with limiter:
            try:
                result = await asyncio.to_thread(action, appt)
            except PreconditionStale as e:
                logger.info(f"Sweep pass {name}: {e}, skipping")
                report.skipped += 1
                return
            except InvalidTransition as e:
                logger.info(f"Sweep pass {name}: {e}")
                report.skipped += 1
                return
            except Exception:
                logger.exception(f"Sweep pass {name}: appointment {appt.id} failed")
                report.failed += 1
                return
        if result:
            report.applied += 1
            report.notified += result.notified
        else:
            report.skipped += 1
