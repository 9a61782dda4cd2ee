"""
Data-access layer.

Every function takes a SQLAlchemy session and returns validated domain
records from ``schemas``. Database failures are logged, the unit of work is
rolled back and a benign value (None, [] or False) is returned instead of
raising, so callers carry on as if nothing was found.
"""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import ProjectDB, ProjectParticipantDB, SessionDB, User as UserDB
from schemas import (
    Project,
    ProjectCreate,
    ProjectUpdate,
    ProjectWithParticipants,
    SessionRecord,
    Task,
    TaskCreate,
    TaskUpdate,
    TaskWithProjectName,
    User,
    UserCredentials,
)
from task_models import TaskDB

logger = logging.getLogger(__name__)

R = TypeVar("R")


# --- row conversion ---

def _to_record(model: Type[R], row) -> Optional[R]:
    if row is None:
        return None
    try:
        return model.model_validate(row, from_attributes=True)
    except ValidationError as e:
        logger.warning("Dropping malformed %s row id=%s: %s", model.__name__, getattr(row, "id", "?"), e)
        return None


def _to_records(model: Type[R], rows: Iterable) -> List[R]:
    out = []
    for row in rows:
        rec = _to_record(model, row)
        if rec is not None:
            out.append(rec)
    return out


def _failed(db: Session, what: str) -> None:
    logger.exception("Database error while %s", what)
    db.rollback()


# --- users ---

def get_users(db: Session) -> List[User]:
    try:
        rows = db.query(UserDB).order_by(UserDB.created_at, UserDB.id).all()
    except SQLAlchemyError:
        _failed(db, "fetching users")
        return []
    return _to_records(User, rows)


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    try:
        row = db.query(UserDB).filter(UserDB.id == user_id).first()
    except SQLAlchemyError:
        _failed(db, f"fetching user {user_id}")
        return None
    return _to_record(User, row)


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return _to_record(User, _user_row_by_username(db, username))


def get_user_credentials(db: Session, username: str) -> Optional[UserCredentials]:
    """User record including the stored password hash (login only)."""
    return _to_record(UserCredentials, _user_row_by_username(db, username))


def _user_row_by_username(db: Session, username: str):
    try:
        # Exact, case-sensitive match
        return db.query(UserDB).filter(UserDB.username == username).first()
    except SQLAlchemyError:
        _failed(db, f"fetching user {username!r}")
        return None


def create_user(db: Session, username: str, password_hash: str) -> Optional[User]:
    try:
        row = UserDB(username=username, password=password_hash)
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        _failed(db, f"registering user {username!r}")
        return None
    return _to_record(User, row)


# --- sessions ---

def create_session(db: Session, user: User, expires_at: datetime, login_time: datetime) -> Optional[SessionRecord]:
    try:
        row = SessionDB(user_id=user.id, username=user.username, expires_at=expires_at, login_time=login_time)
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        _failed(db, f"creating session for user {user.id}")
        return None
    return _to_record(SessionRecord, row)


def get_session(db: Session, session_id: str, user_id: int) -> Optional[SessionRecord]:
    try:
        row = db.query(SessionDB).filter(SessionDB.id == session_id, SessionDB.user_id == user_id).first()
    except SQLAlchemyError:
        _failed(db, f"fetching session {session_id}")
        return None
    return _to_record(SessionRecord, row)


def delete_session(db: Session, session_id: str) -> bool:
    try:
        db.query(SessionDB).filter(SessionDB.id == session_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        _failed(db, f"deleting session {session_id}")
        return False
    return True


def delete_sessions_for_user(db: Session, user_id: int) -> bool:
    try:
        db.query(SessionDB).filter(SessionDB.user_id == user_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        _failed(db, f"deleting sessions of user {user_id}")
        return False
    return True


# --- projects ---

def _participants_by_project(db: Session, project_ids: List[str]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = defaultdict(list)
    if not project_ids:
        return grouped
    rows = (
        db.query(ProjectParticipantDB)
        .filter(ProjectParticipantDB.project_id.in_(project_ids))
        .order_by(ProjectParticipantDB.id)
        .all()
    )
    for row in rows:
        grouped[row.project_id].append(row.username)
    return grouped


def _with_participants(project_rows, participants: Dict[str, List[str]]) -> List[ProjectWithParticipants]:
    out = []
    for project in _to_records(Project, project_rows):
        out.append(ProjectWithParticipants(**project.model_dump(), participants=participants.get(project.id, [])))
    return out


def get_projects(db: Session) -> List[ProjectWithParticipants]:
    try:
        rows = db.query(ProjectDB).order_by(ProjectDB.created_at).all()
        participants = _participants_by_project(db, [r.id for r in rows])
    except SQLAlchemyError:
        _failed(db, "fetching projects")
        return []
    return _with_participants(rows, participants)


def get_project_by_id(db: Session, project_id: str) -> Optional[ProjectWithParticipants]:
    try:
        row = db.query(ProjectDB).filter(ProjectDB.id == project_id).first()
        if row is None:
            logger.info("Project %s not found", project_id)
            return None
        participants = _participants_by_project(db, [row.id])
    except SQLAlchemyError:
        _failed(db, f"fetching project {project_id}")
        return None
    projects = _with_participants([row], participants)
    return projects[0] if projects else None


def get_project_ids_for_user(db: Session, username: str) -> List[str]:
    try:
        rows = db.query(ProjectParticipantDB.project_id).filter(ProjectParticipantDB.username == username).all()
    except SQLAlchemyError:
        _failed(db, f"fetching participations of {username!r}")
        return []
    return [r.project_id for r in rows]


def get_participations(db: Session, usernames: List[str]) -> Dict[str, List[str]]:
    """Project ids per username for every name in ``usernames``, in one query."""
    grouped: Dict[str, List[str]] = defaultdict(list)
    if not usernames:
        return grouped
    try:
        rows = (
            db.query(ProjectParticipantDB.username, ProjectParticipantDB.project_id)
            .filter(ProjectParticipantDB.username.in_(usernames))
            .all()
        )
    except SQLAlchemyError:
        _failed(db, "fetching participations")
        return grouped
    for username, project_id in rows:
        grouped[username].append(project_id)
    return grouped


def get_user_projects(db: Session, username: str) -> List[ProjectWithParticipants]:
    """Projects the user participates in, fetched with three batched queries."""
    project_ids = get_project_ids_for_user(db, username)
    if not project_ids:
        return []
    try:
        rows = db.query(ProjectDB).filter(ProjectDB.id.in_(project_ids)).order_by(ProjectDB.created_at).all()
        participants = _participants_by_project(db, project_ids)
    except SQLAlchemyError:
        _failed(db, f"fetching projects of {username!r}")
        return []
    return _with_participants(rows, participants)


def _insert_participants(db: Session, project_id: str, usernames: List[str]) -> None:
    if not usernames:
        return
    try:
        db.add_all([ProjectParticipantDB(project_id=project_id, username=name) for name in usernames])
        db.commit()
    except SQLAlchemyError:
        # The project row stays; membership is simply missing
        _failed(db, f"adding participants to project {project_id}")


def create_project(db: Session, data: ProjectCreate) -> Optional[ProjectWithParticipants]:
    try:
        row = ProjectDB(name=data.name, description=data.description, deadline=data.deadline)
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        _failed(db, f"creating project {data.name!r}")
        return None

    _insert_participants(db, row.id, data.participants)
    project = _to_record(Project, row)
    if project is None:
        return None
    return ProjectWithParticipants(**project.model_dump(), participants=list(data.participants))


def update_project(db: Session, project_id: str, data: ProjectUpdate) -> Optional[ProjectWithParticipants]:
    fields = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"participants"})
    try:
        row = db.query(ProjectDB).filter(ProjectDB.id == project_id).first()
        if row is None:
            logger.error("Cannot update project %s: not found", project_id)
            return None
        for key, value in fields.items():
            setattr(row, key, value)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        _failed(db, f"updating project {project_id}")
        return None

    if data.participants is not None:
        # Delete and insert share one commit so a failure keeps the old members
        try:
            db.query(ProjectParticipantDB).filter(ProjectParticipantDB.project_id == project_id).delete(
                synchronize_session=False
            )
            db.add_all([ProjectParticipantDB(project_id=project_id, username=name) for name in data.participants])
            db.commit()
        except SQLAlchemyError:
            _failed(db, f"replacing participants of project {project_id}")
            return None

    try:
        participants = _participants_by_project(db, [project_id])
    except SQLAlchemyError:
        _failed(db, f"fetching participants of project {project_id}")
        participants = {}
    projects = _with_participants([row], participants)
    return projects[0] if projects else None


# --- tasks ---

def get_tasks(db: Session) -> List[Task]:
    try:
        rows = db.query(TaskDB).order_by(TaskDB.created_at, TaskDB.id).all()
    except SQLAlchemyError:
        _failed(db, "fetching tasks")
        return []
    return _to_records(Task, rows)


def get_tasks_by_project_id(db: Session, project_id: str) -> List[Task]:
    try:
        rows = db.query(TaskDB).filter(TaskDB.project_id == project_id).order_by(TaskDB.created_at, TaskDB.id).all()
    except SQLAlchemyError:
        _failed(db, f"fetching tasks of project {project_id}")
        return []
    return _to_records(Task, rows)


def get_tasks_by_project_ids(db: Session, project_ids: List[str], completed: Optional[bool] = None) -> List[Task]:
    if not project_ids:
        return []
    try:
        query = db.query(TaskDB).filter(TaskDB.project_id.in_(project_ids))
        if completed is not None:
            query = query.filter(TaskDB.completed == completed)
        rows = query.order_by(TaskDB.created_at, TaskDB.id).all()
    except SQLAlchemyError:
        _failed(db, "fetching tasks of several projects")
        return []
    return _to_records(Task, rows)


def get_task_by_id(db: Session, task_id: int) -> Optional[Task]:
    try:
        row = db.query(TaskDB).filter(TaskDB.id == task_id).first()
    except SQLAlchemyError:
        _failed(db, f"fetching task {task_id}")
        return None
    return _to_record(Task, row)


def create_task(db: Session, project_id: str, data: TaskCreate) -> Optional[Task]:
    try:
        row = TaskDB(project_id=project_id, **data.model_dump())
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        _failed(db, f"creating task in project {project_id}")
        return None
    return _to_record(Task, row)


def update_task(db: Session, task_id: int, data: TaskUpdate) -> Optional[Task]:
    fields = data.model_dump(exclude_unset=True, exclude_none=True)
    try:
        row = db.query(TaskDB).filter(TaskDB.id == task_id).first()
        if row is None:
            logger.error("Cannot update task %s: not found", task_id)
            return None
        for key, value in fields.items():
            setattr(row, key, value)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        _failed(db, f"updating task {task_id}")
        return None
    return _to_record(Task, row)


def delete_task(db: Session, task_id: int) -> bool:
    try:
        deleted = db.query(TaskDB).filter(TaskDB.id == task_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        _failed(db, f"deleting task {task_id}")
        return False
    return deleted > 0


def get_tasks_with_project_name(db: Session, project_ids: Optional[List[str]] = None) -> List[TaskWithProjectName]:
    """Tasks joined with their project's name; limited to ``project_ids`` when given."""
    try:
        query = db.query(TaskDB, ProjectDB.name).outerjoin(ProjectDB, ProjectDB.id == TaskDB.project_id)
        if project_ids is not None:
            if not project_ids:
                return []
            query = query.filter(TaskDB.project_id.in_(project_ids))
        rows = query.order_by(TaskDB.created_at, TaskDB.id).all()
    except SQLAlchemyError:
        _failed(db, "fetching tasks with project names")
        return []

    out = []
    for task_row, project_name in rows:
        task = _to_record(Task, task_row)
        if task is not None:
            out.append(TaskWithProjectName(**task.model_dump(), project_name=project_name or ""))
    return out


def check_connection(db: Session) -> bool:
    try:
        db.execute(select(UserDB.id).limit(1))
    except SQLAlchemyError:
        _failed(db, "testing the database connection")
        return False
    return True
