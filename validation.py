"""Input sanitization and first-error-wins body validation.

A schema is a mapping of body field name to an ordered list of
``(predicate, message)`` rules. Fields are checked in mapping order and rules
in list order; the first predicate that returns False decides the error
message. Models built on :class:`RuledModel` run sanitization and their rule
table before pydantic parses the body, so a request only ever reports a
single violation.
"""
import re
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from settings import settings

Predicate = Callable[[Any], bool]
Rule = Tuple[Predicate, str]
Schema = Dict[str, List[Rule]]

MISSING = object()

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]*>")
_ANGLE_BRACKETS = re.compile(r"[<>]")

USERNAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")
PASSWORD_PATTERN = re.compile(
    r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*(),.?":{}|<>])[A-Za-z\d!@#$%^&*(),.?":{}|<>]'
)

PRIORITIES = ("low", "medium", "high")
ROLES = ("user", "admin")

_datetime_adapter = TypeAdapter(datetime)


def sanitize_input(value):
    if isinstance(value, str):
        value = _SCRIPT_BLOCK.sub("", value)
        value = _HTML_TAG.sub("", value)
        value = _ANGLE_BRACKETS.sub("", value)
        return value.strip()
    if isinstance(value, list):
        return [sanitize_input(item) for item in value]
    return value


def sanitize(payload):
    if not isinstance(payload, dict):
        return payload
    return {key: sanitize_input(value) for key, value in payload.items()}


# Predicates. MISSING means the key was absent from the body; optional-field
# predicates pass on it so that only `required` rejects absence.

def required(value) -> bool:
    return value is not MISSING and value is not None


def is_string(value) -> bool:
    return value is MISSING or isinstance(value, str)


def not_blank(value) -> bool:
    return value is MISSING or (isinstance(value, str) and value != "")


def min_length(n: int) -> Predicate:
    return lambda value: value is MISSING or not isinstance(value, str) or len(value) >= n


def max_length(n: int) -> Predicate:
    return lambda value: value is MISSING or not isinstance(value, str) or len(value) <= n


def matches(pattern) -> Predicate:
    return lambda value: value is MISSING or not isinstance(value, str) or bool(pattern.search(value))


def one_of(choices: Iterable[str]) -> Predicate:
    choices = tuple(choices)
    return lambda value: value is MISSING or value in choices


def is_bool(value) -> bool:
    return value is MISSING or isinstance(value, bool)


def is_email(value) -> bool:
    if value is MISSING or not isinstance(value, str):
        return True
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def email_domain_allowed(value) -> bool:
    if value is MISSING or not isinstance(value, str):
        return True
    domain = value.rsplit("@", 1)[-1].lower() if "@" in value else ""
    return domain in {d.lower() for d in settings.ALLOWED_EMAIL_DOMAINS}


def parse_datetime(value) -> Optional[datetime]:
    try:
        parsed = _datetime_adapter.validate_python(value)
    except ValidationError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def is_datetime(value) -> bool:
    if value is MISSING or value is None:
        return True
    if isinstance(value, bool):
        return False
    return parse_datetime(value) is not None


def not_past(value) -> bool:
    if value is MISSING or value is None:
        return True
    parsed = parse_datetime(value)
    if parsed is None:
        return True
    return parsed >= datetime.now(timezone.utc).replace(tzinfo=None)


def is_list(value) -> bool:
    return value is MISSING or isinstance(value, list)


def max_items(n: int) -> Predicate:
    return lambda value: not isinstance(value, list) or len(value) <= n


def each(predicate: Predicate) -> Predicate:
    return lambda value: not isinstance(value, list) or all(predicate(item) for item in value)


def first_violation(schema: Schema, payload: Dict[str, Any]) -> Optional[str]:
    for field, rules in schema.items():
        value = payload.get(field, MISSING)
        for predicate, message in rules:
            if not predicate(value):
                return message
    return None


USERNAME_RULES: List[Rule] = [
    (is_string, "Username must be a string"),
    (min_length(3), "Username must be at least 3 characters long"),
    (max_length(20), "Username must be at most 20 characters long"),
    (matches(USERNAME_PATTERN), "Username must start with a letter and contain only letters, numbers, and underscores"),
]

EMAIL_RULES: List[Rule] = [
    (is_string, "Please enter a valid email address"),
    (is_email, "Please enter a valid email address"),
]

ALLOWED_EMAIL_RULES: List[Rule] = EMAIL_RULES + [
    (email_domain_allowed, "Please use Gmail, Yahoo, Hotmail, or Outlook email address"),
]

PASSWORD_RULES: List[Rule] = [
    (is_string, "Password must be a string"),
    (min_length(8), "Password must be at least 8 characters long"),
    (
        matches(PASSWORD_PATTERN),
        "Password must contain at least one uppercase letter, one lowercase letter, one number, and one special character",
    ),
]

REGISTER_SCHEMA: Schema = {
    "username": [(required, "Username is required")] + USERNAME_RULES,
    "email": [(required, "Email is required")] + ALLOWED_EMAIL_RULES,
    "password": [(required, "Password is required")] + PASSWORD_RULES,
}

LOGIN_SCHEMA: Schema = {
    "email": [(required, "Email is required")] + EMAIL_RULES,
    "password": [
        (required, "Password is required"),
        (is_string, "Password must be a string"),
        (not_blank, "Password is required"),
    ],
}

PROFILE_SCHEMA: Schema = {
    "username": USERNAME_RULES,
    "email": ALLOWED_EMAIL_RULES,
}

_TODO_FIELD_RULES: Schema = {
    "title": [
        (is_string, "Title must be a string"),
        (not_blank, "Title cannot be empty"),
        (max_length(255), "Title must be at most 255 characters long"),
    ],
    "description": [
        (lambda v: v is None or is_string(v), "Description must be a string"),
        (max_length(1000), "Description must be at most 1000 characters long"),
    ],
    "completed": [(is_bool, "Completed must be a boolean value")],
    "dueDate": [
        (is_datetime, "Due date must be a valid date"),
        (not_past, "Due date cannot be in the past"),
    ],
    "priority": [(one_of(PRIORITIES), "Priority must be low, medium, or high")],
    "reminder": [
        (is_datetime, "Reminder must be a valid date"),
        (not_past, "Reminder cannot be in the past"),
    ],
    "tags": [
        (is_list, "Tags must be a list"),
        (max_items(10), "Maximum 10 tags allowed"),
        (each(lambda tag: isinstance(tag, str)), "Tags must be strings"),
        (each(lambda tag: len(tag) <= 20), "Tag must be at most 20 characters long"),
    ],
}

TODO_CREATE_SCHEMA: Schema = dict(_TODO_FIELD_RULES)
TODO_CREATE_SCHEMA["title"] = [(required, "Title is required")] + _TODO_FIELD_RULES["title"]

TODO_UPDATE_SCHEMA: Schema = dict(_TODO_FIELD_RULES)

ROLE_SCHEMA: Schema = {
    "role": [(required, "Invalid role"), (one_of(ROLES), "Invalid role")],
}


class RuledModel(BaseModel):
    """Request body sanitized and checked against ``rules`` before parsing."""

    rules: ClassVar[Schema] = {}

    # Bodies are read by their camelCase names only, the names the rules check
    model_config = ConfigDict(alias_generator=to_camel, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _sanitize_and_check(cls, data):
        if not isinstance(data, dict):
            raise PydanticCustomError("invalid_body", "Request body must be a JSON object")
        data = sanitize(data)
        message = first_violation(cls.rules, data)
        if message is not None:
            raise PydanticCustomError("rule_violation", message)
        return data
