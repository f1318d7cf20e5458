import pytest

import crud
from models import Todo as DBTodo, User as DBUser

FUTURE = "2999-01-01T09:00:00Z"


def create(client, headers, **fields):
    fields.setdefault("title", "Write report")
    response = client.post("/api/todos", headers=headers, json=fields)
    assert response.status_code == 201, response.text
    return response.json()


def seed(db_session, username, titles):
    user = db_session.query(DBUser).filter_by(username=username).one()
    crud.create_todos(db_session, user.id, [{"title": title} for title in titles])
    return user


def test_todo_lifecycle(client, alice):
    todo = create(client, alice, title="X")

    listing = client.get("/api/todos", headers=alice).json()
    assert [(t["id"], t["title"], t["completed"]) for t in listing["todos"]] == [(todo["id"], "X", False)]

    response = client.put(f"/api/todos/{todo['id']}", headers=alice, json={"completed": True})
    assert response.status_code == 200
    assert response.json()["completed"] is True

    listing = client.get("/api/todos", headers=alice).json()
    assert listing["todos"][0]["completed"] is True

    response = client.delete(f"/api/todos/{todo['id']}", headers=alice)
    assert response.status_code == 200
    assert response.json()["message"] == "Todo deleted successfully"

    response = client.get(f"/api/todos/{todo['id']}", headers=alice)
    assert response.status_code == 404
    assert response.json()["message"] == "Todo not found"


def test_create_todo_defaults(client, alice):
    todo = create(client, alice)
    assert todo["description"] == ""
    assert todo["completed"] is False
    assert todo["priority"] == "medium"
    assert todo["tags"] == []
    assert todo["dueDate"] is None
    assert todo["reminder"] is None
    assert "createdAt" in todo and "updatedAt" in todo


def test_create_todo_with_all_fields(client, alice):
    todo = create(
        client, alice,
        title="  Plan trip ",
        description="Book hotel",
        priority="high",
        dueDate=FUTURE,
        reminder=FUTURE,
        tags=["travel", "<i>fun</i>"],
    )
    assert todo["title"] == "Plan trip"
    assert todo["priority"] == "high"
    assert todo["dueDate"].startswith("2999-01-01T09:00:00")
    assert todo["tags"] == ["travel", "fun"]


def test_create_todo_strips_script_blocks(client, alice):
    todo = create(client, alice, title="<script>alert(1)</script>Task")
    assert todo["title"] == "Task"


@pytest.mark.parametrize(
    "payload, message",
    [
        ({}, "Title is required"),
        ({"title": ""}, "Title cannot be empty"),
        ({"title": "<b></b>"}, "Title cannot be empty"),
        ({"title": "x" * 256}, "Title must be at most 255 characters long"),
        ({"title": "ok", "description": "d" * 1001}, "Description must be at most 1000 characters long"),
        ({"title": "ok", "completed": "yes"}, "Completed must be a boolean value"),
        ({"title": "ok", "dueDate": "2000-01-01T00:00:00Z"}, "Due date cannot be in the past"),
        ({"title": "ok", "dueDate": "someday"}, "Due date must be a valid date"),
        ({"title": "ok", "reminder": "2000-01-01T00:00:00Z"}, "Reminder cannot be in the past"),
        ({"title": "ok", "priority": "urgent"}, "Priority must be low, medium, or high"),
        ({"title": "ok", "tags": [str(i) for i in range(11)]}, "Maximum 10 tags allowed"),
        ({"title": "ok", "tags": ["t" * 21]}, "Tag must be at most 20 characters long"),
    ],
)
def test_create_todo_validation(client, alice, db_session, payload, message):
    response = client.post("/api/todos", headers=alice, json=payload)
    assert response.status_code == 400
    assert response.json()["message"] == message
    assert db_session.query(DBTodo).count() == 0


def test_update_is_partial(client, alice):
    todo = create(client, alice, title="Old", description="keep me", priority="low")
    response = client.put(f"/api/todos/{todo['id']}", headers=alice, json={"title": "New"})
    assert response.status_code == 200
    updated = response.json()
    assert updated["title"] == "New"
    assert updated["description"] == "keep me"
    assert updated["priority"] == "low"


def test_update_clears_due_date(client, alice):
    todo = create(client, alice, dueDate=FUTURE)
    response = client.put(f"/api/todos/{todo['id']}", headers=alice, json={"dueDate": None})
    assert response.status_code == 200
    assert response.json()["dueDate"] is None


def test_update_validation(client, alice):
    todo = create(client, alice, dueDate=FUTURE)
    for body, message in [
        ({"title": ""}, "Title cannot be empty"),
        ({"dueDate": "2000-01-01T00:00:00Z"}, "Due date cannot be in the past"),
        ({"dueDate": "not-a-date"}, "Due date must be a valid date"),
    ]:
        response = client.put(f"/api/todos/{todo['id']}", headers=alice, json=body)
        assert response.status_code == 400
        assert response.json()["message"] == message


def test_snake_case_keys_do_not_reach_the_store(client, alice):
    todo = create(client, alice, title="ok", due_date="2000-01-01T00:00:00Z", reminder="2999-01-01T08:00:00Z")
    assert todo["dueDate"] is None

    todo = create(client, alice, title="dated", dueDate=FUTURE)
    for body in ({"due_date": "2000-01-01T00:00:00Z"}, {"due_date": "not-a-date"}):
        response = client.put(f"/api/todos/{todo['id']}", headers=alice, json=body)
        assert response.status_code == 200
        assert response.json()["dueDate"] == todo["dueDate"]


def test_todos_are_isolated_between_users(client, alice, bob):
    todo = create(client, alice, title="Alice only")
    create(client, bob, title="Bob only")

    titles = [t["title"] for t in client.get("/api/todos", headers=bob).json()["todos"]]
    assert titles == ["Bob only"]

    assert client.get(f"/api/todos/{todo['id']}", headers=bob).status_code == 404
    assert client.put(f"/api/todos/{todo['id']}", headers=bob, json={"completed": True}).status_code == 404
    assert client.delete(f"/api/todos/{todo['id']}", headers=bob).status_code == 404

    # untouched for the owner
    assert client.get(f"/api/todos/{todo['id']}", headers=alice).json()["completed"] is False


def test_unknown_and_malformed_ids_are_not_found(client, alice):
    assert client.get("/api/todos/999", headers=alice).status_code == 404
    response = client.put("/api/todos/not-an-id", headers=alice, json={"title": "x"})
    assert response.status_code == 404


def test_todos_require_auth(client):
    response = client.get("/api/todos")
    assert response.status_code == 401


def test_pagination(client, alice, db_session):
    seed(db_session, "alice", [f"Task {i}" for i in range(7)])

    first = client.get("/api/todos?page=1&limit=3", headers=alice).json()
    assert len(first["todos"]) == 3
    assert first["pagination"] == {
        "currentPage": 1,
        "totalPages": 3,
        "totalCount": 7,
        "hasNextPage": True,
        "hasPrevPage": False,
        "limit": 3,
    }

    second = client.get("/api/todos?page=2&limit=3", headers=alice).json()
    assert second["pagination"]["hasNextPage"] is True  # 6 < 7

    last = client.get("/api/todos?page=3&limit=3", headers=alice).json()
    assert len(last["todos"]) == 1
    assert last["pagination"]["hasNextPage"] is False
    assert last["pagination"]["hasPrevPage"] is True

    seen = {t["id"] for page in (first, second, last) for t in page["todos"]}
    assert len(seen) == 7

    beyond = client.get("/api/todos?page=4&limit=3", headers=alice).json()
    assert beyond["todos"] == []


def test_has_next_page_on_exact_boundary(client, alice, db_session):
    seed(db_session, "alice", [f"Task {i}" for i in range(6)])
    page = client.get("/api/todos?page=2&limit=3", headers=alice).json()
    assert page["pagination"]["hasNextPage"] is False


@pytest.mark.parametrize("query", ["page=0", "limit=0", "limit=101", "page=-1&limit=5"])
def test_invalid_pagination(client, alice, query):
    response = client.get(f"/api/todos?{query}", headers=alice)
    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid pagination parameters")


def test_search_matches_title_or_description(client, alice):
    create(client, alice, title="Buy milk")
    create(client, alice, title="Groceries", description="eggs and MILK")
    create(client, alice, title="Read book")

    data = client.get("/api/todos?search=milk", headers=alice).json()
    assert sorted(t["title"] for t in data["todos"]) == ["Buy milk", "Groceries"]
    assert data["filters"] == {"search": "milk", "status": "all", "sortBy": "createdAt", "sortOrder": "desc"}


def test_search_is_literal(client, alice):
    create(client, alice, title="100% done")
    create(client, alice, title="1000 things")

    data = client.get("/api/todos", params={"search": "0%"}, headers=alice).json()
    assert [t["title"] for t in data["todos"]] == ["100% done"]


def test_status_filter(client, alice):
    done = create(client, alice, title="Done")
    create(client, alice, title="Pending")
    client.put(f"/api/todos/{done['id']}", headers=alice, json={"completed": True})

    completed = client.get("/api/todos?status=completed", headers=alice).json()
    assert [t["title"] for t in completed["todos"]] == ["Done"]

    pending = client.get("/api/todos?status=pending", headers=alice).json()
    assert [t["title"] for t in pending["todos"]] == ["Pending"]

    everything = client.get("/api/todos?status=all", headers=alice).json()
    assert everything["pagination"]["totalCount"] == 2


def test_sort_by_title(client, alice, db_session):
    seed(db_session, "alice", ["banana", "cherry", "apple"])

    asc = client.get("/api/todos?sortBy=title&sortOrder=asc", headers=alice).json()
    assert [t["title"] for t in asc["todos"]] == ["apple", "banana", "cherry"]

    desc = client.get("/api/todos?sortBy=title&sortOrder=desc", headers=alice).json()
    assert [t["title"] for t in desc["todos"]] == ["cherry", "banana", "apple"]


def test_sort_ties_follow_id_in_the_sort_direction(client, alice, db_session):
    seed(db_session, "alice", ["same", "same", "same"])
    ids = [todo.id for todo in db_session.query(DBTodo).order_by(DBTodo.id)]

    asc = client.get("/api/todos?sortBy=title&sortOrder=asc", headers=alice).json()
    assert [t["id"] for t in asc["todos"]] == ids

    desc = client.get("/api/todos?sortBy=title&sortOrder=desc", headers=alice).json()
    assert [t["id"] for t in desc["todos"]] == ids[::-1]


def test_export_and_import(client, alice, bob):
    create(client, alice, title="One", tags=["a"])
    create(client, alice, title="Two", priority="high")

    exported = client.get("/api/todos/export", headers=alice).json()
    assert exported["version"] == "1.0"
    assert "exportDate" in exported
    assert [t["title"] for t in exported["todos"]] == ["One", "Two"]

    items = exported["todos"] + [{"title": ""}, "not a todo"]
    response = client.post("/api/todos/import", headers=bob, json={"todos": items})
    assert response.status_code == 201
    assert response.json() == {"message": "Todos imported successfully", "imported": 2, "skipped": 2}

    imported = client.get("/api/todos?sortBy=title&sortOrder=asc", headers=bob).json()["todos"]
    assert [(t["title"], t["priority"], t["tags"]) for t in imported] == [("One", "medium", ["a"]), ("Two", "high", [])]


def test_import_rejects_oversized_batches(client, alice):
    response = client.post("/api/todos/import", headers=alice, json={"todos": [{"title": "x"}] * 501})
    assert response.status_code == 400
