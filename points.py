"""
Points and ranking.

A user's points are never stored: they are the sum of ``point`` over
completed tasks in every project the user participates in, recomputed on
each call. Tasks are fetched in batches (one in-list query) rather than one
query per project or per user.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from sqlalchemy.orm import Session

import repository
from schemas import Progress, RankingEntry, Task

logger = logging.getLogger(__name__)


def completed_points(tasks: Iterable[Task]) -> int:
    return sum(t.point or 0 for t in tasks if t.completed)


def calculate_user_points(db: Session, username: str) -> int:
    project_ids = repository.get_project_ids_for_user(db, username)
    tasks = repository.get_tasks_by_project_ids(db, project_ids, completed=True)
    return completed_points(tasks)


def calculate_points_for_users(db: Session, usernames: Sequence[str]) -> Dict[str, int]:
    """Points for every name in ``usernames`` using two queries in total."""
    participations = repository.get_participations(db, list(usernames))
    all_project_ids = sorted({pid for ids in participations.values() for pid in ids})
    tasks = repository.get_tasks_by_project_ids(db, all_project_ids, completed=True)

    per_project: Dict[str, int] = defaultdict(int)
    for task in tasks:
        per_project[task.project_id] += task.point or 0

    return {
        name: sum(per_project[pid] for pid in set(participations.get(name, [])))
        for name in usernames
    }


def build_rankings(entries: Iterable[Tuple[str, int]]) -> List[RankingEntry]:
    """
    Sort by points, highest first, and number the result 1..N.

    The sort is stable and ranks follow sorted position, so users with equal
    points keep their incoming order and get distinct consecutive ranks.
    """
    ordered = sorted(entries, key=lambda e: e[1], reverse=True)
    return [RankingEntry(username=name, points=pts, rank=i + 1) for i, (name, pts) in enumerate(ordered)]


def find_user_rank(rankings: Iterable[RankingEntry], username: str) -> int:
    for entry in rankings:
        if entry.username == username:
            return entry.rank
    return 0


def get_user_rankings(db: Session) -> List[RankingEntry]:
    # Registration order is the incoming order for ties
    usernames = [u.username for u in repository.get_users(db)]
    points = calculate_points_for_users(db, usernames)
    logger.debug("Ranking computed for %d users", len(usernames))
    return build_rankings((name, points[name]) for name in usernames)


def project_progress(tasks: Sequence[Task]) -> Progress:
    total = len(tasks)
    done = sum(1 for t in tasks if t.completed)
    return Progress(
        completed_tasks=done,
        total_tasks=total,
        percentage=(done / total) * 100 if total else 0.0,
        completed_points=completed_points(tasks),
    )
