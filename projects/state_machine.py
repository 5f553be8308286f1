# projects/state_machine.py
"""
Task progress / status state machine.

Progress drives status through one table, evaluated in order:

    progress <= 0                                    -> not-started
    progress >= 100                                  -> completed
    0 < progress < 100, prior in {not-started, completed} -> in-progress
    0 < progress < 100, any other prior status       -> unchanged

There is no other progress-driven transition path. Manual statuses such as
on-hold or impacted survive progress changes in the middle band.
"""
from typing import Iterable, Optional
import logging
import math

from .entities import Task

logger = logging.getLogger("tracker.projects")


RESTARTABLE_STATUSES = {Task.STATUS_NOT_STARTED, Task.STATUS_COMPLETED}

# Statuses that satisfy a dependency
DONE_STATUSES = {Task.STATUS_COMPLETED, Task.STATUS_DONE}


def clamp_progress(value) -> int:
    """Coerce to int and clamp into [0, 100]. Non-finite input is a ValueError."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"progress must be finite, got {value!r}")
    progress = int(round(number))
    return max(0, min(100, progress))


def derive_status(progress: int, prior_status: str) -> str:
    """Status a task ends up in after its progress is set to ``progress``."""
    if progress <= 0:
        return Task.STATUS_NOT_STARTED
    if progress >= 100:
        return Task.STATUS_COMPLETED
    if prior_status in RESTARTABLE_STATUSES:
        return Task.STATUS_IN_PROGRESS
    return prior_status


def apply_progress(task: Task, changes: dict) -> dict:
    """
    Fold progress-driven status into an update payload.

    An explicit ``status`` in the same update wins over the derived one.
    Returns the payload to persist.
    """
    if "progress" not in changes or "status" in changes:
        return changes

    new_status = derive_status(changes["progress"], task.status)
    if new_status != task.status:
        logger.debug(f"Task {task.id} status {task.status} -> {new_status} (progress {changes['progress']})")
        return {**changes, "status": new_status}
    return changes


def resolve_dependencies(task: Task, tasks: Iterable[Task]) -> list:
    """Tasks ``task`` depends on, in dependency order. Dangling ids resolve to nothing."""
    by_id = {candidate.id: candidate for candidate in tasks}
    return [by_id[dep_id] for dep_id in task.dependencies if dep_id in by_id]


def can_start(task: Task, tasks: Iterable[Task]) -> bool:
    """True iff every resolved dependency is completed (or done). No dependencies -> True."""
    return all(dep.status in DONE_STATUSES for dep in resolve_dependencies(task, tasks))


def find_dependency_cycle(task_id: str, dependencies: list, tasks: Iterable[Task]) -> Optional[list]:
    """
    Return the cycle (list of task ids, starting and ending at ``task_id``)
    that giving ``task_id`` these ``dependencies`` would create, or None.
    """
    graph = {task.id: list(task.dependencies) for task in tasks}
    graph[task_id] = list(dependencies)

    # Depth-first search from each direct dependency back to task_id
    stack = [(dep_id, [task_id, dep_id]) for dep_id in reversed(dependencies)]
    visited = set()
    while stack:
        current, path = stack.pop()
        if current == task_id:
            return path
        if current in visited:
            continue
        visited.add(current)
        for next_id in reversed(graph.get(current, [])):
            stack.append((next_id, path + [next_id]))
    return None
