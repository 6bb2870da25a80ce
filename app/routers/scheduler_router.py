from fastapi import APIRouter, Depends, Request
import logging

from ..application.services.sweeper import LifecycleSweeper
from ..schemas.scheduler.sweep import PassReportResponse, SweepReportResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


def get_sweeper(request: Request) -> LifecycleSweeper:
    return request.app.state.sweeper


@router.post("/sweep", response_model=SweepReportResponse)
async def run_sweep(sweeper: LifecycleSweeper = Depends(get_sweeper)):
    """Run one sweep now instead of waiting for the next tick."""
    logger.info("Manual sweep requested")
    report = await sweeper.run()
    return SweepReportResponse(
        started_at=report.started_at,
        finished_at=report.finished_at,
        applied=report.applied,
        failed=report.failed,
        notified=report.notified,
        passes={name: PassReportResponse(**vars(p)) for name, p in report.passes.items()},
    )
