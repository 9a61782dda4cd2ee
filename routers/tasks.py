import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import repository
from dependencies import get_current_user, get_db
from routers.projects import build_project_detail, load_project_for_member
from schemas import ProjectDetail, Task, TaskCreate, TaskUpdate, User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tasks"])


def load_task_for_member(db: Session, task_id: int, user: User) -> Task:
    task = repository.get_task_by_id(db, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    load_project_for_member(db, task.project_id, user)
    return task


@router.post("/projects/{project_id}/tasks", response_model=Task, status_code=201)
def create_task(project_id: str, task: TaskCreate, db: Session = Depends(get_db),
                user: User = Depends(get_current_user)):
    """
    Adds a task to a project the user participates in.

    Title, category, period and point are required; the comment is optional.
    """
    load_project_for_member(db, project_id, user)
    if not task.title or not task.title.strip():
        raise HTTPException(status_code=400, detail="Please enter a task title")

    created = repository.create_task(db, project_id, task)
    if created is None:
        raise HTTPException(status_code=500, detail="Failed to add task")
    return created


@router.get("/tasks/{task_id}", response_model=Task)
def read_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return load_task_for_member(db, task_id, user)


@router.put("/tasks/{task_id}", response_model=Task)
def update_task(task_id: int, task: TaskUpdate, db: Session = Depends(get_db),
                user: User = Depends(get_current_user)):
    load_task_for_member(db, task_id, user)
    updated = repository.update_task(db, task_id, task)
    if updated is None:
        raise HTTPException(status_code=500, detail="Failed to update task")
    return updated


@router.post("/tasks/{task_id}/toggle", response_model=ProjectDetail)
def toggle_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Flips the completion flag, then re-reads the project's task list so
    progress and the caller's points reflect the change.
    """
    task = load_task_for_member(db, task_id, user)
    if repository.update_task(db, task_id, TaskUpdate(completed=not task.completed)) is None:
        raise HTTPException(status_code=500, detail="Failed to update task")

    project = load_project_for_member(db, task.project_id, user)
    return build_project_detail(db, project, user)


@router.delete("/tasks/{task_id}")
def delete_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    load_task_for_member(db, task_id, user)
    if not repository.delete_task(db, task_id):
        raise HTTPException(status_code=500, detail="Failed to delete task")
    logger.info("Task %s deleted by %r", task_id, user.username)
    return {"detail": "Task deleted"}
