from collections import defaultdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import repository
from dependencies import get_current_user, get_db
from points import project_progress
from schemas import CalendarEvent, CalendarResponse, GanttBar, User

router = APIRouter(
    prefix="/calendar",
    tags=["calendar"]
)


@router.get("", response_model=CalendarResponse)
def get_calendar_events(completed: Optional[bool] = None, category: Optional[str] = None,
                        search: Optional[str] = None, db: Session = Depends(get_db),
                        user: User = Depends(get_current_user)):
    """
    Tasks of the user's projects as calendar events (due date = period),
    plus one Gantt bar per project running from creation to deadline.
    """
    projects = repository.get_user_projects(db, user.username)
    tasks = repository.get_tasks_with_project_name(db, [p.id for p in projects])

    events = [
        CalendarEvent(
            id=t.id,
            title=t.title,
            project_id=t.project_id,
            project_name=t.project_name,
            start=t.period,
            end=t.period,
            category=t.category,
            point=t.point,
            completed=t.completed,
        )
        for t in tasks
    ]

    if completed is not None:
        events = [e for e in events if e.completed == completed]
    if category:
        events = [e for e in events if e.category == category]
    if search:
        search_lower = search.lower()
        events = [e for e in events if search_lower in e.title.lower() or search_lower in e.project_name.lower()]

    by_project = defaultdict(list)
    for t in tasks:
        by_project[t.project_id].append(t)

    bars = []
    for p in projects:
        start = p.created_at.date() if p.created_at else p.deadline
        bars.append(GanttBar(
            id=p.id,
            name=p.name,
            start=min(start, p.deadline),
            end=p.deadline,
            progress=project_progress(by_project[p.id]).percentage,
        ))

    # Undated tasks sort last
    events.sort(key=lambda e: (e.start is None, e.start or date.max, e.id))
    return CalendarResponse(events=events, projects=bars)
