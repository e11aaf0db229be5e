from fastapi import APIRouter, Depends, HTTPException, Request

from cleansort.api.deps import verify_api_key_dependency
from .dispatcher import ReminderDispatcher
from .schemas import CycleSummary, DispatchStatus


router = APIRouter(dependencies=[Depends(verify_api_key_dependency)])


def get_dispatcher(request: Request) -> ReminderDispatcher:
    dispatcher = getattr(request.app.state, "reminder_dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Reminder notifications are disabled")
    return dispatcher


@router.post("/dispatch/run", response_model=CycleSummary)
def run_dispatch_cycle(dispatcher: ReminderDispatcher = Depends(get_dispatcher)):
    """Run one scan-and-dispatch cycle now. Returns skipped=true if a cycle is already running."""
    # Sync endpoint: FastAPI runs it in the threadpool, like the scheduler's worker thread
    return dispatcher.run_cycle(trigger="manual")


@router.get("/dispatch/status", response_model=DispatchStatus)
def dispatch_status(request: Request):
    dispatcher = getattr(request.app.state, "reminder_dispatcher", None)
    scheduler = getattr(request.app.state, "reminder_scheduler", None)
    return DispatchStatus(
        enabled=dispatcher is not None,
        scheduler_running=bool(scheduler and scheduler.running),
        cycle_in_progress=bool(dispatcher and dispatcher.cycle_in_progress),
        last_cycle=dispatcher.last_summary if dispatcher else None,
    )
