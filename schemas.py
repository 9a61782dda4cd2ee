from datetime import date, datetime, timezone
from typing import List, Optional

import bleach
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Choices offered by the add-task form; stored values are free-form
TASK_CATEGORIES = ("work", "personal", "study", "other")
MIN_PASSWORD_LENGTH = 8


def sanitize(v: Optional[str]) -> Optional[str]:
    if v:
        # Strip every HTML tag and attribute, keep the text content
        return bleach.clean(v, tags=[], attributes={}, strip=True)
    return v


def dedupe_names(names: List[str]) -> List[str]:
    """Strip names, drop blanks and repeats, keep first-seen order."""
    seen = []
    for name in names:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; they were written as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class Record(BaseModel):
    """Base for rows converted at the data-access boundary."""
    model_config = ConfigDict(from_attributes=True)


# --- Users ---
class User(Record):
    id: int
    username: str
    created_at: Optional[datetime] = None


class UserCredentials(User):
    password: str


class UserWithPoints(User):
    points: int = 0


# --- Sessions ---
class SessionRecord(Record):
    id: str
    user_id: int
    username: str
    expires_at: datetime
    login_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("expires_at", "login_time", "created_at")
    @classmethod
    def normalize_tz(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < as_utc(now)


class RegisterRequest(BaseModel):
    username: str
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    session: SessionRecord


# --- Projects ---
class Project(Record):
    id: str
    name: str
    description: Optional[str] = None
    deadline: date
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectWithParticipants(Project):
    participants: List[str] = Field(default_factory=list)


class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    deadline: date
    participants: List[str] = Field(default_factory=list)

    @field_validator("name", "description")
    @classmethod
    def sanitize_input(cls, v: Optional[str]) -> Optional[str]:
        return sanitize(v)

    @field_validator("participants")
    @classmethod
    def dedupe_participants(cls, v: List[str]) -> List[str]:
        return dedupe_names(v)


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[date] = None
    # None leaves membership untouched, a list replaces it
    participants: Optional[List[str]] = None

    @field_validator("name", "description")
    @classmethod
    def sanitize_input(cls, v: Optional[str]) -> Optional[str]:
        return sanitize(v)

    @field_validator("participants")
    @classmethod
    def dedupe_participants(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return dedupe_names(v) if v is not None else v


class ProjectSummary(ProjectWithParticipants):
    participant_count: int = 0
    task_count: int = 0


# --- Tasks ---
class Task(Record):
    id: int
    project_id: str
    title: str
    category: str
    period: Optional[date] = None
    point: int = Field(default=0, ge=0)
    completed: bool = False
    comment: Optional[str] = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TaskCreate(BaseModel):
    title: str
    category: str
    period: date
    point: int = Field(ge=1)
    comment: Optional[str] = ""
    completed: bool = False

    @field_validator("title", "comment")
    @classmethod
    def sanitize_input(cls, v: Optional[str]) -> Optional[str]:
        return sanitize(v)

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str) -> str:
        if v not in TASK_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(TASK_CATEGORIES)}")
        return v


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    period: Optional[date] = None
    point: Optional[int] = Field(default=None, ge=1)
    completed: Optional[bool] = None
    comment: Optional[str] = None

    @field_validator("title", "comment", "category")
    @classmethod
    def sanitize_input(cls, v: Optional[str]) -> Optional[str]:
        return sanitize(v)

    @field_validator("title", "category")
    @classmethod
    def not_blank(cls, v: Optional[str]) -> Optional[str]:
        # Omitted is fine, present-but-empty is not
        if v is not None and not v.strip():
            raise ValueError("must not be empty")
        return v


class TaskWithProjectName(Task):
    project_name: str = ""


# --- Derived views ---
class Progress(BaseModel):
    completed_tasks: int
    total_tasks: int
    percentage: float
    completed_points: int


class ProjectDetail(BaseModel):
    project: ProjectWithParticipants
    tasks: List[Task]
    progress: Progress
    user_points: Optional[int] = None


class RankingEntry(BaseModel):
    username: str
    points: int
    rank: int


class RankingResponse(BaseModel):
    rankings: List[RankingEntry]
    top: List[RankingEntry]
    user_rank: int
    user_points: int


class CalendarEvent(BaseModel):
    id: int
    title: str
    project_id: str
    project_name: str
    start: Optional[date] = None
    end: Optional[date] = None
    category: str
    point: int
    completed: bool


class GanttBar(BaseModel):
    id: str
    name: str
    start: date
    end: date
    progress: float


class CalendarResponse(BaseModel):
    events: List[CalendarEvent]
    projects: List[GanttBar]
