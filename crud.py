"""Store operations for users and todos.

Todo reads and writes always filter on the owning user id; a todo that
belongs to someone else looks exactly like one that does not exist.
"""
import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from errors import AppError, ErrorKind, not_found
from models import Todo as DBTodo, User as DBUser, utcnow
from security import get_password_hash

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "createdAt": DBTodo.created_at,
    "title": DBTodo.title,
    "updatedAt": DBTodo.updated_at,
}

ACTIVE_USER_WINDOW = timedelta(days=7)


def like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# Users

def get_user(db: Session, user_id: int) -> Optional[DBUser]:
    return db.get(DBUser, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[DBUser]:
    return db.query(DBUser).filter(DBUser.email == email.lower()).first()


def get_user_by_username(db: Session, username: str) -> Optional[DBUser]:
    return db.query(DBUser).filter(DBUser.username == username).first()


def create_user(db: Session, username: str, email: str, password: str) -> DBUser:
    existing = db.query(DBUser).filter(
        or_(DBUser.email == email, DBUser.username == username)
    ).first()
    if existing:
        raise AppError(ErrorKind.CONFLICT, "User already exists")

    db_user = DBUser(
        username=username,
        email=email,
        hashed_password=get_password_hash(password),
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info("Registered user %s (id=%s)", db_user.username, db_user.id)
    return db_user


def record_login(db: Session, user: DBUser) -> DBUser:
    user.last_login = utcnow()
    db.commit()
    db.refresh(user)
    return user


def update_profile(db: Session, user: DBUser, username: Optional[str] = None, email: Optional[str] = None) -> DBUser:
    if username and username != user.username:
        if get_user_by_username(db, username):
            raise AppError(ErrorKind.CONFLICT, "Username already taken")
        user.username = username

    if email and email != user.email:
        if get_user_by_email(db, email):
            raise AppError(ErrorKind.CONFLICT, "Email already registered")
        user.email = email

    db.commit()
    db.refresh(user)
    return user


def list_users(db: Session, page: int = 1, limit: int = 10, search: str = "") -> Tuple[List[DBUser], int]:
    query = db.query(DBUser)
    if search:
        pattern = like_pattern(search)
        query = query.filter(or_(
            DBUser.username.ilike(pattern, escape="\\"),
            DBUser.email.ilike(pattern, escape="\\"),
        ))
    total = query.count()
    users = (
        query.order_by(DBUser.created_at.desc(), DBUser.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return users, total


def todo_counts(db: Session, user_id: Optional[int] = None) -> Tuple[int, int]:
    query = db.query(DBTodo)
    if user_id is not None:
        query = query.filter(DBTodo.user_id == user_id)
    total = query.count()
    completed = query.filter(DBTodo.completed.is_(True)).count()
    return total, completed


def completion_rate(total: int, completed: int) -> float:
    if total == 0:
        return 0
    return round(completed / total * 100, 1)


def set_role(db: Session, user_id: int, role: str) -> DBUser:
    user = get_user(db, user_id)
    if user is None:
        raise not_found("User")
    user.role = role
    db.commit()
    db.refresh(user)
    logger.info("User %s role set to %s", user.id, role)
    return user


def promote_admin(db: Session, email: str) -> DBUser:
    user = get_user_by_email(db, email)
    if user is None:
        raise not_found("User")
    return set_role(db, user.id, "admin")


def delete_user(db: Session, user_id: int):
    user = get_user(db, user_id)
    if user is None:
        raise not_found("User")
    removed = db.query(DBTodo).filter(DBTodo.user_id == user.id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s and %d todos", user_id, removed)


def system_stats(db: Session) -> Dict[str, Any]:
    total_users = db.query(DBUser).count()
    total_todos, completed = todo_counts(db)
    active_users = db.query(DBUser).filter(DBUser.last_login >= utcnow() - ACTIVE_USER_WINDOW).count()

    recent_users = db.query(DBUser).order_by(DBUser.created_at.desc(), DBUser.id.desc()).limit(5).all()
    recent_todos = (
        db.query(DBTodo, DBUser.username)
        .join(DBUser, DBTodo.user_id == DBUser.id)
        .order_by(DBTodo.created_at.desc(), DBTodo.id.desc())
        .limit(10)
        .all()
    )
    return {
        "total_users": total_users,
        "total_todos": total_todos,
        "completed_todos": completed,
        "completion_rate": completion_rate(total_todos, completed),
        "active_users": active_users,
        "recent_users": recent_users,
        "recent_todos": [
            {
                "id": todo.id,
                "title": todo.title,
                "completed": todo.completed,
                "created_at": todo.created_at,
                "username": username,
            }
            for todo, username in recent_todos
        ],
    }


# Todos

@dataclass
class TodoQuery:
    page: int = 1
    limit: int = 10
    search: str = ""
    status: str = "all"
    sort_by: str = "createdAt"
    sort_order: str = "desc"

    def validate(self):
        if self.page < 1 or self.limit < 1 or self.limit > 100:
            raise AppError(
                ErrorKind.VALIDATION,
                "Invalid pagination parameters. Page must be >= 1, limit must be between 1 and 100.",
            )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def list_todos(db: Session, owner_id: int, params: TodoQuery) -> Dict[str, Any]:
    params.validate()

    query = db.query(DBTodo).filter(DBTodo.user_id == owner_id)

    if params.search:
        pattern = like_pattern(params.search)
        query = query.filter(or_(
            DBTodo.title.ilike(pattern, escape="\\"),
            DBTodo.description.ilike(pattern, escape="\\"),
        ))

    if params.status == "completed":
        query = query.filter(DBTodo.completed.is_(True))
    elif params.status == "pending":
        query = query.filter(DBTodo.completed.is_(False))

    column = SORT_FIELDS.get(params.sort_by, DBTodo.created_at)
    if params.sort_order == "asc":
        order = (column.asc(), DBTodo.id.asc())
    else:
        order = (column.desc(), DBTodo.id.desc())

    total = query.order_by(None).with_entities(func.count(DBTodo.id)).scalar()
    todos = query.order_by(*order).offset(params.skip).limit(params.limit).all()
    total_pages = math.ceil(total / params.limit)

    return {
        "todos": todos,
        "pagination": {
            "current_page": params.page,
            "total_pages": total_pages,
            "total_count": total,
            "has_next_page": params.page * params.limit < total,
            "has_prev_page": params.page > 1,
            "limit": params.limit,
        },
        "filters": {
            "search": params.search,
            "status": params.status,
            "sort_by": params.sort_by,
            "sort_order": params.sort_order,
        },
    }


def get_todo(db: Session, owner_id: int, todo_id: int) -> DBTodo:
    todo = db.query(DBTodo).filter(DBTodo.id == todo_id, DBTodo.user_id == owner_id).first()
    if todo is None:
        raise not_found("Todo")
    return todo


def all_todos(db: Session, owner_id: int) -> List[DBTodo]:
    return (
        db.query(DBTodo)
        .filter(DBTodo.user_id == owner_id)
        .order_by(DBTodo.created_at.asc(), DBTodo.id.asc())
        .all()
    )


def new_todo(owner_id: int, fields: Dict[str, Any]) -> DBTodo:
    return DBTodo(
        user_id=owner_id,
        title=fields["title"],
        description=fields.get("description") or "",
        completed=bool(fields.get("completed") or False),
        due_date=fields.get("due_date"),
        priority=fields.get("priority") or "medium",
        reminder=fields.get("reminder"),
        tags=fields.get("tags") or [],
    )


def create_todo(db: Session, owner_id: int, fields: Dict[str, Any]) -> DBTodo:
    todo = new_todo(owner_id, fields)
    db.add(todo)
    db.commit()
    db.refresh(todo)
    return todo


def create_todos(db: Session, owner_id: int, items: List[Dict[str, Any]]) -> int:
    todos = [new_todo(owner_id, fields) for fields in items]
    db.add_all(todos)
    db.commit()
    return len(todos)


def update_todo(db: Session, owner_id: int, todo_id: int, fields: Dict[str, Any]) -> DBTodo:
    todo = get_todo(db, owner_id, todo_id)
    for name, value in fields.items():
        if name == "description" and value is None:
            value = ""
        setattr(todo, name, value)
    todo.updated_at = utcnow()
    db.commit()
    db.refresh(todo)
    return todo


def delete_todo(db: Session, owner_id: int, todo_id: int):
    removed = db.query(DBTodo).filter(DBTodo.id == todo_id, DBTodo.user_id == owner_id).delete(
        synchronize_session=False
    )
    if not removed:
        raise not_found("Todo")
    db.commit()
