import pytest
from sqlalchemy.exc import IntegrityError

import crud
from models import Todo as DBTodo, User as DBUser
from tests.conftest import bearer, register


def user_id(db_session, username):
    return db_session.query(DBUser).filter_by(username=username).one().id


def test_admin_routes_require_admin_role(client, alice):
    for method, path in [
        ("get", "/api/admin/users"),
        ("get", "/api/admin/users/1"),
        ("put", "/api/admin/users/1/role"),
        ("delete", "/api/admin/users/1"),
        ("get", "/api/admin/stats"),
    ]:
        response = getattr(client, method)(path, headers=alice)
        assert response.status_code == 403, path
        assert response.json()["message"] == "Access denied. Admin only."


def test_admin_routes_require_auth(client):
    assert client.get("/api/admin/stats").status_code == 401


def test_list_users(client, admin, alice, bob):
    data = client.get("/api/admin/users", headers=admin).json()
    assert data["total"] == 3
    assert data["currentPage"] == 1
    assert data["totalPages"] == 1
    assert {u["username"] for u in data["users"]} == {"root_admin", "alice", "bob"}
    assert all("hashedPassword" not in u for u in data["users"])


def test_list_users_search_and_paging(client, admin, alice, bob):
    data = client.get("/api/admin/users?search=ALI", headers=admin).json()
    assert [u["username"] for u in data["users"]] == ["alice"]

    data = client.get("/api/admin/users?page=2&limit=2", headers=admin).json()
    assert data["total"] == 3
    assert data["totalPages"] == 2
    assert len(data["users"]) == 1


def test_user_detail_includes_todo_stats(client, admin, alice, db_session):
    first = client.post("/api/todos", headers=alice, json={"title": "one"}).json()
    client.post("/api/todos", headers=alice, json={"title": "two"})
    client.post("/api/todos", headers=alice, json={"title": "three"})
    client.put(f"/api/todos/{first['id']}", headers=alice, json={"completed": True})

    data = client.get(f"/api/admin/users/{user_id(db_session, 'alice')}", headers=admin).json()
    assert data["username"] == "alice"
    assert data["todosCount"] == 3
    assert data["completedTodos"] == 1
    assert data["completionRate"] == 33.3


def test_user_detail_not_found(client, admin):
    response = client.get("/api/admin/users/999", headers=admin)
    assert response.status_code == 404
    assert response.json()["message"] == "User not found"


def test_update_role(client, admin, alice, db_session):
    target = user_id(db_session, "alice")
    response = client.put(f"/api/admin/users/{target}/role", headers=admin, json={"role": "admin"})
    assert response.status_code == 200
    assert response.json()["message"] == "User role updated successfully"
    assert response.json()["user"]["role"] == "admin"

    # alice can now reach admin routes
    assert client.get("/api/admin/stats", headers=alice).status_code == 200


def test_update_role_rejects_unknown_roles(client, admin, alice, db_session):
    target = user_id(db_session, "alice")
    for body in ({"role": "superuser"}, {}):
        response = client.put(f"/api/admin/users/{target}/role", headers=admin, json=body)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid role"


def test_delete_user_cascades_to_todos(client, admin, alice, bob, db_session):
    client.post("/api/todos", headers=alice, json={"title": "alice's"})
    client.post("/api/todos", headers=bob, json={"title": "bob's"})
    target = user_id(db_session, "alice")

    response = client.delete(f"/api/admin/users/{target}", headers=admin)
    assert response.status_code == 200

    db_session.expire_all()
    assert db_session.get(DBUser, target) is None
    assert db_session.query(DBTodo).filter_by(user_id=target).count() == 0
    assert db_session.query(DBTodo).count() == 1

    assert client.delete(f"/api/admin/users/{target}", headers=admin).status_code == 404


def test_stats(client, admin, alice):
    done = client.post("/api/todos", headers=alice, json={"title": "done"}).json()
    client.post("/api/todos", headers=alice, json={"title": "open"})
    client.put(f"/api/todos/{done['id']}", headers=alice, json={"completed": True})
    client.post("/api/login", json={"email": "alice@gmail.com", "password": "Passw0rd!"})

    data = client.get("/api/admin/stats", headers=admin).json()
    assert data["totalUsers"] == 2
    assert data["totalTodos"] == 2
    assert data["completedTodos"] == 1
    assert data["completionRate"] == 50.0
    assert data["activeUsers"] == 1
    assert {u["username"] for u in data["recentUsers"]} == {"root_admin", "alice"}
    assert {t["username"] for t in data["recentTodos"]} == {"alice"}


def test_deleted_users_token_does_not_reach_a_new_account(client, admin, alice, db_session):
    old_id = user_id(db_session, "alice")
    assert client.delete(f"/api/admin/users/{old_id}", headers=admin).status_code == 200

    response = register(client, "carol")
    assert response.status_code == 201
    carol = bearer(response.json()["token"])
    client.post("/api/todos", headers=carol, json={"title": "carol private"})
    assert user_id(db_session, "carol") != old_id

    for method, path, body in [
        ("GET", "/api/todos", None),
        ("POST", "/api/todos", {"title": "x"}),
        ("GET", "/api/profile", None),
        ("POST", "/api/logout", None),
    ]:
        response = client.request(method, path, headers=alice, json=body)
        assert response.status_code == 401, path
        assert response.json()["message"] == "Invalid or missing token"

    titles = [t["title"] for t in client.get("/api/todos", headers=carol).json()["todos"]]
    assert titles == ["carol private"]


def test_todos_need_an_existing_owner(db_session):
    with pytest.raises(IntegrityError):
        crud.create_todo(db_session, 999, {"title": "orphan"})
    db_session.rollback()
    assert db_session.query(DBTodo).count() == 0
