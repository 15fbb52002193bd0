import pytest


@pytest.fixture
def school(db, add_user):
    add_user("admin1", "Grace", "Hopper", "https://img/grace.png")
    db["schools"].insert_one({"_id": "s1", "name": "State U", "adminIds": ["admin1", "ghost"]})
    return "s1"


def test_admin_status(client, auth, school):
    r = client.get(f"/schools/{school}/admin", headers=auth("admin1"))
    assert r.status_code == 200
    body = r.json()
    assert body["isAdmin"] is True
    assert body["adminIds"] == ["admin1", "ghost"]
    assert body["admins"] == [
        {"uid": "admin1", "firstName": "Grace", "lastName": "Hopper", "profilePicture": "https://img/grace.png"},
    ]
    assert client.get(f"/schools/{school}/admin", headers=auth("student")).json()["isAdmin"] is False
    assert client.get("/schools/none/admin", headers=auth("admin1")).status_code == 404


def test_add_and_remove_admin(client, auth, db, school):
    r = client.post(f"/schools/{school}/admin", headers=auth("admin1"),
                    json={"targetUserId": "new", "action": "add"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "adminIds": ["admin1", "ghost", "new"]}

    r = client.post(f"/schools/{school}/admin", headers=auth("admin1"),
                    json={"targetUserId": "ghost", "action": "remove"})
    assert r.json()["adminIds"] == ["admin1", "new"]
    assert db["schools"].find_one({"_id": school})["adminIds"] == ["admin1", "new"]


@pytest.mark.parametrize("body, error", [
    ({"action": "add"}, "Missing required fields: targetUserId, action"),
    ({"targetUserId": "x", "action": "promote"}, "Invalid action. Must be 'add' or 'remove'"),
    ({"targetUserId": "ghost", "action": "add"}, "User is already an admin"),
    ({"targetUserId": "x", "action": "remove"}, "User is not an admin"),
])
def test_change_admin_validation(client, auth, school, body, error):
    r = client.post(f"/schools/{school}/admin", headers=auth("admin1"), json=body)
    assert r.status_code == 400
    assert r.json() == {"error": error}


def test_cannot_remove_last_admin(client, auth, db):
    db["schools"].insert_one({"_id": "s2", "adminIds": ["solo"]})
    r = client.post("/schools/s2/admin", headers=auth("solo"), json={"targetUserId": "solo", "action": "remove"})
    assert r.status_code == 400
    assert r.json() == {"error": "Cannot remove the last admin"}


def test_only_admins_can_change(client, auth, school):
    r = client.post(f"/schools/{school}/admin", headers=auth("student"),
                    json={"targetUserId": "student", "action": "add"})
    assert r.status_code == 403
    assert client.post("/schools/none/admin", headers=auth("student"),
                       json={"targetUserId": "a", "action": "add"}).status_code == 404
