"""Pure progress rules: sticky flag merge, status derivation, percentages.

No database access here. The SQL upsert in progress_service mirrors these
rules for the conflict path, so both must change together.
"""

from __future__ import annotations

from dataclasses import dataclass

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"


@dataclass(frozen=True)
class ProgressFlags:
    """The three activity flags that drive lesson status."""

    video_watched: bool = False
    quiz_completed: bool = False
    task_completed: bool = False


def merge_flags(
    old: ProgressFlags | None,
    video_watched: bool | None = None,
    quiz_completed: bool | None = None,
    task_completed: bool | None = None,
) -> ProgressFlags:
    """Merge reported flags into stored ones: ``old OR new`` per flag.

    A flag that is not reported (None) keeps its stored value, and a stored
    True never regresses to False.
    """
    base = old or ProgressFlags()
    return ProgressFlags(
        video_watched=base.video_watched or bool(video_watched),
        quiz_completed=base.quiz_completed or bool(quiz_completed),
        task_completed=base.task_completed or bool(task_completed),
    )


def derive_status(flags: ProgressFlags) -> str:
    """completed if all three flags are set, in_progress if any, else not_started."""
    values = (flags.video_watched, flags.quiz_completed, flags.task_completed)
    if all(values):
        return COMPLETED
    if any(values):
        return IN_PROGRESS
    return NOT_STARTED


def progress_percentage(completed: int, total: int) -> int:
    """completed / total as a whole percent, halves rounded up; 0 when there is nothing to complete."""
    if total <= 0:
        return 0
    return (completed * 200 + total) // (2 * total)
