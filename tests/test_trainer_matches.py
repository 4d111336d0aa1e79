import pytest

from gymos.core.errors import ConflictError, NotFoundError, ValidationError
from gymos.services import matches as svc


def _pair(world, student="student", trainer="trainer"):
    return {"trainerId": world.users[trainer], "studentId": world.users[student]}


def test_create_match(client, world, auth):
    r = client.post("/trainer-matches", json=_pair(world), headers=auth("owner"))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "active"
    assert body["trainer"]["email"] == "trainer@irontemple.com"
    assert body["student"]["email"] == "student@irontemple.com"

    r = client.post("/trainer-matches", json=_pair(world), headers=auth("owner"))
    assert r.status_code == 409
    assert r.json()["detail"] == "This trainer-student match already exists"


@pytest.mark.parametrize("trainer, student, status, detail", [
    ("owner", "student", 400, "User is not a trainer"),
    ("trainer", "student2", None, None),
    ("trainer", "owner", 400, "User is not a student"),
    ("outsider", "student", 404, "Trainer not found"),
    ("trainer", "outsider", 404, "Student not found"),
])
def test_create_match_checks_both_sides(client, world, auth, trainer, student, status, detail):
    r = client.post("/trainer-matches", json=_pair(world, student, trainer), headers=auth("owner"))
    if status is None:
        assert r.status_code == 201
    else:
        assert r.status_code == status
        assert r.json()["detail"] == detail


def test_only_owners_create_and_end_matches(client, world, auth, match):
    assert client.post("/trainer-matches", json=_pair(world), headers=auth("trainer")).status_code == 403
    assert client.post("/trainer-matches", json=_pair(world), headers=auth("student")).status_code == 403
    match_id = match("student")
    assert client.delete(f"/trainer-matches/{match_id}", headers=auth("trainer")).status_code == 403
    assert client.get("/trainer-matches", headers=auth("student")).status_code == 403


def test_status_update(client, world, auth, match):
    match_id = match("student")
    r = client.patch(f"/trainer-matches/{match_id}/status", json={"status": "pending"}, headers=auth("trainer"))
    assert r.status_code == 200
    assert r.json()["status"] == "pending"

    r = client.patch(f"/trainer-matches/{match_id}/status", json={"status": "paused"}, headers=auth("owner"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Status must be active, pending, or ended"
    assert client.patch("/trainer-matches/9999/status", json={"status": "ended"}, headers=auth("owner")).status_code == 404


def test_end_and_restore(client, world, auth, match):
    match_id = match("student")
    assert client.delete(f"/trainer-matches/{match_id}", headers=auth("owner")).status_code == 204
    assert client.get(f"/trainer-matches/{match_id}", headers=auth("owner")).status_code == 404
    assert client.get("/trainer-matches", headers=auth("owner")).json()["pagination"]["total"] == 0

    # the pair is unique, so matching again brings the old row back
    r = client.post("/trainer-matches", json=_pair(world), headers=auth("owner"))
    assert r.status_code == 201
    assert r.json()["id"] == match_id
    assert r.json()["status"] == "active"


def test_list_filters(client, world, auth, match):
    first = match("student")
    second = match("student2", status="pending")
    hdrs = auth("trainer")

    everything = client.get("/trainer-matches", headers=hdrs).json()
    assert {m["id"] for m in everything["items"]} == {first, second}

    pending = client.get("/trainer-matches", params={"status": "pending"}, headers=hdrs).json()
    assert [m["id"] for m in pending["items"]] == [second]

    by_student = client.get("/trainer-matches", params={"student_id": world.users["student"]}, headers=hdrs).json()
    assert [m["id"] for m in by_student["items"]] == [first]

    assert client.get("/trainer-matches", params={"status": "nope"}, headers=hdrs).status_code == 400
    assert client.get("/trainer-matches", headers=auth("outsider")).json()["pagination"]["total"] == 0


def test_trainer_students(client, world, auth, match):
    match("student")
    match("student2", status="pending")
    trainer = world.users["trainer"]

    r = client.get(f"/trainer-matches/trainer/{trainer}/students", headers=auth("trainer"))
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "active"
    assert body["total_students"] == 1
    assert body["students"][0]["email"] == "student@irontemple.com"
    assert body["students"][0]["match_status"] == "active"

    pending = client.get(f"/trainer-matches/trainer/{trainer}/students", params={"status": "pending"},
                         headers=auth("trainer")).json()
    assert [s["id"] for s in pending["students"]] == [world.users["student2"]]

    assert client.get("/trainer-matches/trainer/9999/students", headers=auth("owner")).status_code == 404


def test_student_trainer(client, world, auth, match):
    me = world.users["student"]
    r = client.get(f"/trainer-matches/student/{me}/trainer", headers=auth("student"))
    assert r.json() == {"student_id": me, "has_trainer": False, "match_id": None, "match_status": None,
                        "match_created_at": None, "trainer": None}

    match("student")
    body = client.get(f"/trainer-matches/student/{me}/trainer", headers=auth("student")).json()
    assert body["has_trainer"] is True
    assert body["trainer"]["first_name"] == "Theo"

    other = world.users["student2"]
    r = client.get(f"/trainer-matches/student/{other}/trainer", headers=auth("student"))
    assert r.status_code == 403
    assert client.get(f"/trainer-matches/student/{other}/trainer", headers=auth("owner")).json()["has_trainer"] is False
    assert client.get("/trainer-matches/student/9999/trainer", headers=auth("owner")).status_code == 404


def test_ended_matches_drop_out_of_active_students(db, world, match):
    match("student")
    ended = match("student2")
    svc.end_match(db, world.gym_id, ended)
    assert svc.active_student_ids(db, world.gym_id, world.users["trainer"]) == [world.users["student"]]

    with pytest.raises(NotFoundError):
        svc.get_match(db, world.gym_id, ended)


def test_service_rejects_duplicates_and_bad_status(db, world, match):
    match_id = match("student")
    with pytest.raises(ConflictError):
        svc.create_match(db, world.gym_id, world.users["trainer"], world.users["student"])
    with pytest.raises(ValidationError):
        svc.update_status(db, world.gym_id, match_id, "archived")
