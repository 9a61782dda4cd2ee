from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import repository
from dependencies import get_db
from schemas import TASK_CATEGORIES

router = APIRouter(tags=["system"])

APP_NAME = "Taskuru"
APP_VERSION = "1.0.0"


@router.get("/about")
def about():
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "description": "Create projects with friends, share tasks and earn points for finishing them.",
        "task_categories": list(TASK_CATEGORIES),
    }


@router.get("/test-connection")
def connection_check(db: Session = Depends(get_db)):
    """Checks that the database answers a trivial query."""
    return {"connected": repository.check_connection(db)}
