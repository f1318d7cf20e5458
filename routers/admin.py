import math

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import crud
from database import get_db
from errors import not_found
from models import User as DBUser
from schemas import MessageResponse, RoleUpdate, RoleUpdateResponse, SystemStats, User, UserDetail, UserList
from security import require_admin

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=UserList)
async def list_users(
    page: int = 1,
    limit: int = 10,
    search: str = "",
    admin: DBUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    users, total = crud.list_users(db, page=page, limit=limit, search=search)
    return {
        "users": users,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "total": total,
    }


@router.get("/users/{user_id}", response_model=UserDetail)
async def read_user(user_id: int, admin: DBUser = Depends(require_admin), db: Session = Depends(get_db)):
    user = crud.get_user(db, user_id)
    if user is None:
        raise not_found("User")
    total, completed = crud.todo_counts(db, user.id)
    return {
        **User.model_validate(user).model_dump(),
        "todos_count": total,
        "completed_todos": completed,
        "completion_rate": crud.completion_rate(total, completed),
    }


@router.put("/users/{user_id}/role", response_model=RoleUpdateResponse)
async def update_role(
    user_id: int,
    body: RoleUpdate,
    admin: DBUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = crud.set_role(db, user_id, body.role)
    return {"message": "User role updated successfully", "user": user}


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(user_id: int, admin: DBUser = Depends(require_admin), db: Session = Depends(get_db)):
    crud.delete_user(db, user_id)
    return {"message": "User and associated todos deleted successfully"}


@router.get("/stats", response_model=SystemStats)
async def stats(admin: DBUser = Depends(require_admin), db: Session = Depends(get_db)):
    return crud.system_stats(db)
