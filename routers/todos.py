import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

import crud
from database import get_db
from errors import AppError, ErrorKind
from models import utcnow
from ratelimit import todo_creation_limiter, user_limiter
from schemas import (
    ImportResult,
    MessageResponse,
    Todo,
    TodoCreate,
    TodoExport,
    TodoImport,
    TodoList,
    TodoUpdate,
)
from security import get_current_user_id

logger = logging.getLogger(__name__)

MAX_IMPORT_ITEMS = 500
EXPORT_VERSION = "1.0"

router = APIRouter(prefix="/todos", tags=["todos"], dependencies=[Depends(user_limiter)])


@router.get("", response_model=TodoList)
async def list_todos(
    page: int = 1,
    limit: int = 10,
    search: str = "",
    status_filter: str = Query("all", alias="status"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    params = crud.TodoQuery(
        page=page,
        limit=limit,
        search=search,
        status=status_filter,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return crud.list_todos(db, user_id, params)


@router.post(
    "",
    response_model=Todo,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(todo_creation_limiter)],
)
async def create_todo(
    todo: TodoCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.create_todo(db, user_id, todo.model_dump())


@router.get("/export", response_model=TodoExport)
async def export_todos(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {
        "todos": crud.all_todos(db, user_id),
        "export_date": utcnow(),
        "version": EXPORT_VERSION,
    }


@router.post(
    "/import",
    response_model=ImportResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(todo_creation_limiter)],
)
async def import_todos(
    payload: TodoImport,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if len(payload.todos) > MAX_IMPORT_ITEMS:
        raise AppError(ErrorKind.VALIDATION, f"A maximum of {MAX_IMPORT_ITEMS} todos can be imported at once")

    valid = []
    skipped = 0
    for item in payload.todos:
        try:
            valid.append(TodoCreate.model_validate(item).model_dump())
        except ValidationError:
            skipped += 1

    imported = crud.create_todos(db, user_id, valid)
    logger.info("User %s imported %d todos (%d skipped)", user_id, imported, skipped)
    return {"message": "Todos imported successfully", "imported": imported, "skipped": skipped}


@router.get("/{todo_id}", response_model=Todo)
async def read_todo(todo_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return crud.get_todo(db, user_id, todo_id)


@router.put("/{todo_id}", response_model=Todo)
async def update_todo(
    todo_id: int,
    todo: TodoUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.update_todo(db, user_id, todo_id, todo.model_dump(exclude_unset=True))


@router.delete("/{todo_id}", response_model=MessageResponse)
async def delete_todo(todo_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    crud.delete_todo(db, user_id, todo_id)
    return {"message": "Todo deleted successfully"}
