import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import repository
from dependencies import get_current_user, get_db
from points import calculate_user_points, project_progress
from schemas import (
    ProjectCreate,
    ProjectDetail,
    ProjectSummary,
    ProjectUpdate,
    ProjectWithParticipants,
    User,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["projects"])


def load_project_for_member(db: Session, project_id: str, user: User) -> ProjectWithParticipants:
    """Fetch a project and make sure ``user`` is one of its participants."""
    project = repository.get_project_by_id(db, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    if user.username not in project.participants:
        logger.info("Access to project %s denied for %r", project_id, user.username)
        raise HTTPException(status_code=403, detail="You must be a participant of this project")
    return project


def build_project_detail(db: Session, project: ProjectWithParticipants, user: User) -> ProjectDetail:
    tasks = repository.get_tasks_by_project_id(db, project.id)
    return ProjectDetail(
        project=project,
        tasks=tasks,
        progress=project_progress(tasks),
        user_points=calculate_user_points(db, user.username),
    )


@router.get("/users", response_model=List[str])
def list_usernames(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Usernames that can be picked as participants (current user included)."""
    return [u.username for u in repository.get_users(db)]


@router.get("/projects", response_model=List[ProjectSummary])
def read_projects(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    projects = repository.get_user_projects(db, user.username)
    tasks = repository.get_tasks_by_project_ids(db, [p.id for p in projects])
    counts = {}
    for t in tasks:
        counts[t.project_id] = counts.get(t.project_id, 0) + 1
    return [
        ProjectSummary(**p.model_dump(), participant_count=len(p.participants), task_count=counts.get(p.id, 0))
        for p in projects
    ]


@router.post("/projects", response_model=ProjectWithParticipants, status_code=201)
def create_project(project: ProjectCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Creates a project. The creator always becomes a participant.

    Raises:
        HTTPException(400): empty name or no participants.
        HTTPException(500): the project row could not be written.
    """
    if not project.name or not project.name.strip():
        raise HTTPException(status_code=400, detail="Please enter a project name")
    if user.username not in project.participants:
        project.participants.insert(0, user.username)

    created = repository.create_project(db, project)
    if created is None:
        raise HTTPException(status_code=500, detail="Failed to create project")
    logger.info("Project %s created by %r", created.id, user.username)
    return created


@router.get("/projects/{project_id}", response_model=ProjectDetail)
def read_project(project_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    project = load_project_for_member(db, project_id, user)
    return build_project_detail(db, project, user)


@router.put("/projects/{project_id}", response_model=ProjectWithParticipants)
def update_project(project_id: str, project: ProjectUpdate, db: Session = Depends(get_db),
                   user: User = Depends(get_current_user)):
    load_project_for_member(db, project_id, user)
    if project.name is not None and not project.name.strip():
        raise HTTPException(status_code=400, detail="Please enter a project name")
    if project.participants is not None and not project.participants:
        raise HTTPException(status_code=400, detail="Please select at least one participant")

    updated = repository.update_project(db, project_id, project)
    if updated is None:
        raise HTTPException(status_code=500, detail="Failed to update project")
    return updated
