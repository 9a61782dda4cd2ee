from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

import repository
from auth_utils import hash_password
from schemas import ProjectCreate, ProjectUpdate, TaskCreate, TaskUpdate


@pytest.fixture
def users(db_session):
    return [repository.create_user(db_session, name, hash_password("password1")) for name in ("alice", "bob")]


def new_project(db, name="Launch", participants=("alice", "bob")):
    return repository.create_project(
        db, ProjectCreate(name=name, description="desc", deadline=date(2025, 12, 1), participants=list(participants))
    )


def new_task(db, project_id, title="Write spec", point=5):
    return repository.create_task(
        db, project_id, TaskCreate(title=title, category="study", period=date(2025, 11, 20), point=point)
    )


def test_users_in_registration_order(db_session, users):
    assert [u.username for u in repository.get_users(db_session)] == ["alice", "bob"]
    assert repository.get_user_by_id(db_session, users[1].id).username == "bob"
    assert repository.get_user_by_username(db_session, "ALICE") is None


def test_credentials_only_through_dedicated_lookup(db_session, users):
    creds = repository.get_user_credentials(db_session, "alice")
    assert creds.password.startswith("$2")
    assert "password" not in repository.get_user_by_username(db_session, "alice").model_dump()


def test_create_project_with_participants(db_session, users):
    project = new_project(db_session)
    assert project.participants == ["alice", "bob"]

    fetched = repository.get_project_by_id(db_session, project.id)
    assert fetched.name == "Launch"
    assert fetched.description == "desc"
    assert fetched.deadline == date(2025, 12, 1)
    assert fetched.participants == ["alice", "bob"]


def test_get_user_projects_only_returns_memberships(db_session, users):
    launch = new_project(db_session, "Launch", ["alice", "bob"])
    new_project(db_session, "Solo", ["bob"])

    assert [p.id for p in repository.get_user_projects(db_session, "alice")] == [launch.id]
    assert sorted(p.name for p in repository.get_user_projects(db_session, "bob")) == ["Launch", "Solo"]
    assert repository.get_user_projects(db_session, "carol") == []
    assert len(repository.get_projects(db_session)) == 2


def test_participations_grouped_by_user(db_session, users):
    launch = new_project(db_session, "Launch", ["alice", "bob"])
    solo = new_project(db_session, "Solo", ["bob"])

    grouped = repository.get_participations(db_session, ["alice", "bob", "carol"])
    assert grouped["alice"] == [launch.id]
    assert sorted(grouped["bob"]) == sorted([launch.id, solo.id])
    assert "carol" not in grouped


def test_update_project_keeps_members_when_not_given(db_session, users):
    project = new_project(db_session)

    updated = repository.update_project(db_session, project.id, ProjectUpdate(description="new"))
    assert updated.description == "new"
    assert updated.name == "Launch"
    assert updated.participants == ["alice", "bob"]


def test_update_project_replaces_members(db_session, users):
    project = new_project(db_session)

    updated = repository.update_project(db_session, project.id, ProjectUpdate(participants=["bob"]))
    assert updated.participants == ["bob"]
    assert repository.get_user_projects(db_session, "alice") == []


def test_failed_member_replace_keeps_old_members(db_session, users):
    project = new_project(db_session)

    # Skips validation, so the duplicate reaches the unique constraint
    clashing = ProjectUpdate.model_construct(participants=["bob", "bob"])
    assert repository.update_project(db_session, project.id, clashing) is None
    assert repository.get_project_by_id(db_session, project.id).participants == ["alice", "bob"]


def test_update_unknown_project(db_session):
    assert repository.update_project(db_session, "missing", ProjectUpdate(name="x")) is None


def test_task_crud(db_session, users):
    project = new_project(db_session)
    task = new_task(db_session, project.id)
    assert task.completed is False
    assert task.category == "study"

    updated = repository.update_task(db_session, task.id, TaskUpdate(completed=True))
    assert updated.completed is True
    assert updated.title == "Write spec"

    assert repository.get_task_by_id(db_session, task.id).completed is True
    assert repository.delete_task(db_session, task.id) is True
    assert repository.get_task_by_id(db_session, task.id) is None
    assert repository.delete_task(db_session, task.id) is False


def test_tasks_by_project_ids_batch(db_session, users):
    p1 = new_project(db_session, "P1")
    p2 = new_project(db_session, "P2")
    new_task(db_session, p1.id, "a")
    t2 = new_task(db_session, p2.id, "b")
    repository.update_task(db_session, t2.id, TaskUpdate(completed=True))

    assert {t.title for t in repository.get_tasks_by_project_ids(db_session, [p1.id, p2.id])} == {"a", "b"}
    assert [t.title for t in repository.get_tasks_by_project_ids(db_session, [p1.id, p2.id], completed=True)] == ["b"]
    assert repository.get_tasks_by_project_ids(db_session, []) == []
    assert len(repository.get_tasks(db_session)) == 2


def test_tasks_with_project_name(db_session, users):
    p1 = new_project(db_session, "Launch")
    p2 = new_project(db_session, "Other")
    new_task(db_session, p1.id, "a")
    new_task(db_session, p2.id, "b")

    everything = repository.get_tasks_with_project_name(db_session)
    assert {(t.title, t.project_name) for t in everything} == {("a", "Launch"), ("b", "Other")}

    only_launch = repository.get_tasks_with_project_name(db_session, [p1.id])
    assert [t.project_name for t in only_launch] == ["Launch"]
    assert repository.get_tasks_with_project_name(db_session, []) == []


def test_database_errors_become_empty_results(db_session, users, monkeypatch):
    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is gone"))

    monkeypatch.setattr(db_session, "query", broken_query)

    assert repository.get_users(db_session) == []
    assert repository.get_user_by_id(db_session, 1) is None
    assert repository.get_project_by_id(db_session, "x") is None
    assert repository.get_user_projects(db_session, "alice") == []
    assert repository.get_tasks_by_project_id(db_session, "x") == []
    assert repository.delete_task(db_session, 1) is False
    assert repository.delete_sessions_for_user(db_session, 1) is False


def test_check_connection(db_session, monkeypatch):
    assert repository.check_connection(db_session) is True

    def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is gone"))

    monkeypatch.setattr(db_session, "execute", broken_execute)
    assert repository.check_connection(db_session) is False
