from datetime import datetime
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from validation import (
    LOGIN_SCHEMA,
    PROFILE_SCHEMA,
    REGISTER_SCHEMA,
    ROLE_SCHEMA,
    TODO_CREATE_SCHEMA,
    TODO_UPDATE_SCHEMA,
    RuledModel,
    Schema,
    parse_datetime,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Request bodies

class UserCreate(RuledModel):
    rules: ClassVar[Schema] = REGISTER_SCHEMA

    username: str
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class UserLogin(RuledModel):
    rules: ClassVar[Schema] = LOGIN_SCHEMA

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class ProfileUpdate(RuledModel):
    rules: ClassVar[Schema] = PROFILE_SCHEMA

    username: Optional[str] = None
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower() if v is not None else v


class TodoBase(RuledModel):
    description: Optional[str] = None
    completed: Optional[bool] = None
    due_date: Optional[datetime] = None
    priority: Optional[str] = None
    reminder: Optional[datetime] = None
    tags: Optional[List[str]] = None

    @field_validator("due_date", "reminder", mode="before")
    @classmethod
    def to_naive_utc(cls, v):
        if v is None:
            return v
        parsed = parse_datetime(v)
        # Unparseable input falls through to pydantic's own datetime error
        return v if parsed is None else parsed


class TodoCreate(TodoBase):
    rules: ClassVar[Schema] = TODO_CREATE_SCHEMA

    title: str


class TodoUpdate(TodoBase):
    rules: ClassVar[Schema] = TODO_UPDATE_SCHEMA

    title: Optional[str] = None


class TodoImport(BaseModel):
    todos: list


class RoleUpdate(RuledModel):
    rules: ClassVar[Schema] = ROLE_SCHEMA

    role: str


# Responses

class AuthResponse(BaseModel):
    message: str
    token: str
    username: str
    email: str


class MessageResponse(BaseModel):
    message: str


class ProfileResponse(MessageResponse):
    username: str
    email: str


class User(CamelModel):
    id: int
    username: str
    email: str
    role: str
    created_at: datetime
    last_login: Optional[datetime] = None


class UserDetail(User):
    todos_count: int
    completed_todos: int
    completion_rate: float


class UserSummary(CamelModel):
    id: int
    username: str
    email: str
    created_at: datetime


class RoleUpdateResponse(MessageResponse):
    user: User


class UserList(CamelModel):
    users: List[User]
    total_pages: int
    current_page: int
    total: int


class Todo(CamelModel):
    id: int
    user_id: int
    title: str
    description: str
    completed: bool
    due_date: Optional[datetime] = None
    priority: str
    reminder: Optional[datetime] = None
    tags: List[str]
    created_at: datetime
    updated_at: datetime


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool
    limit: int


class Filters(CamelModel):
    search: str
    status: str
    sort_by: str
    sort_order: str


class TodoList(CamelModel):
    todos: List[Todo]
    pagination: Pagination
    filters: Filters


class TodoExport(CamelModel):
    todos: List[Todo]
    export_date: datetime
    version: str


class ImportResult(MessageResponse):
    imported: int
    skipped: int


class RecentTodo(CamelModel):
    id: int
    title: str
    completed: bool
    created_at: datetime
    username: Optional[str] = None


class SystemStats(CamelModel):
    total_users: int
    total_todos: int
    completed_todos: int
    completion_rate: float
    active_users: int
    recent_users: List[UserSummary]
    recent_todos: List[RecentTodo]
