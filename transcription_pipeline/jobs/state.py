"""Job state machine.

    status:          processing -> completed | error
    analysis_status: pending -> processing -> completed | error
    summary_status:  pending -> processing -> completed | error

analysis_status and summary_status follow the same table and only leave
``pending`` once status is ``completed``.
No transition leaves a terminal value; re-triggering a failed job is an
operator action outside this package.
"""

from transcription_pipeline.jobs.models import AnalysisStatus, JobStatus
from transcription_pipeline.utils.errors import InvalidTransitionError

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.ERROR})
TERMINAL_ANALYSIS_STATUSES = frozenset(
    {AnalysisStatus.COMPLETED, AnalysisStatus.ERROR}
)

STATUS_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.ERROR}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.ERROR: frozenset(),
}

ANALYSIS_TRANSITIONS: dict[AnalysisStatus, frozenset[AnalysisStatus]] = {
    AnalysisStatus.PENDING: frozenset({AnalysisStatus.PROCESSING}),
    AnalysisStatus.PROCESSING: frozenset(
        {AnalysisStatus.COMPLETED, AnalysisStatus.ERROR}
    ),
    AnalysisStatus.COMPLETED: frozenset(),
    AnalysisStatus.ERROR: frozenset(),
}


def is_terminal_status(status: JobStatus | str) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def is_terminal_analysis_status(status: AnalysisStatus | str) -> bool:
    return AnalysisStatus(status) in TERMINAL_ANALYSIS_STATUSES


def can_transition_status(current: JobStatus | str, target: JobStatus | str) -> bool:
    return JobStatus(target) in STATUS_TRANSITIONS[JobStatus(current)]


def can_transition_analysis(
    job_status: JobStatus | str,
    current: AnalysisStatus | str,
    target: AnalysisStatus | str,
) -> bool:
    """Check an analysis transition, including the gate on job status."""
    if JobStatus(job_status) is not JobStatus.COMPLETED:
        return False
    return AnalysisStatus(target) in ANALYSIS_TRANSITIONS[AnalysisStatus(current)]


def ensure_status_transition(
    current: JobStatus | str,
    target: JobStatus | str,
    job_id: str | None = None,
) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if not can_transition_status(current, target):
        raise InvalidTransitionError(
            f"Cannot move status from '{current}' to '{target}'",
            job_id=job_id,
            current=str(current),
            target=str(target),
        )


def ensure_analysis_transition(
    job_status: JobStatus | str,
    current: AnalysisStatus | str,
    target: AnalysisStatus | str,
    job_id: str | None = None,
    column: str = "analysis_status",
) -> None:
    """Raise InvalidTransitionError unless the analysis or summary transition is allowed.

    ``column`` names the field being moved, for the error message.
    """
    if JobStatus(job_status) is not JobStatus.COMPLETED:
        raise InvalidTransitionError(
            f"{column} cannot leave '{current}' while status is '{job_status}'",
            job_id=job_id,
            current=str(current),
            target=str(target),
        )
    if not can_transition_analysis(job_status, current, target):
        raise InvalidTransitionError(
            f"Cannot move {column} from '{current}' to '{target}'",
            job_id=job_id,
            current=str(current),
            target=str(target),
        )
