from conftest import PASSWORD


def _register(client, world, **overrides):
    body = {
        "email": "new.member@irontemple.com",
        "password": "hunter22",
        "first_name": "Nina",
        "last_name": "New",
        "gym_id": world.gym_id,
        "role_id": world.roles["Student"],
    }
    body.update(overrides)
    return client.post("/auth/register", json=body)


def test_register_returns_tokens_and_user(client, world):
    r = _register(client, world)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"] and body["refresh_token"]
    assert body["user"]["role"]["name"] == "Student"
    assert body["user"]["gym_id"] == world.gym_id


def test_register_rejects_duplicates_and_foreign_roles(client, world):
    assert _register(client, world, email="student@irontemple.com").status_code == 409
    assert _register(client, world, gym_id=424242).status_code == 400
    r = _register(client, world, gym_id=world.other_gym_id)
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid role for this gym"
    assert _register(client, world, password="123").status_code == 422


def test_login(client, world):
    r = client.post("/auth/login", json={"email": "trainer@irontemple.com", "password": PASSWORD})
    assert r.status_code == 200
    token = r.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    body = me.json()
    assert body["email"] == "trainer@irontemple.com"
    assert body["gym"]["slug"] == "iron-temple"
    assert body["permissions"]["orders"]["update"] is True


def test_login_failures(client, world, db):
    r = client.post("/auth/login", json={"email": "trainer@irontemple.com", "password": "wrong-one"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid email or password"
    assert client.post("/auth/login", json={"email": "ghost@irontemple.com", "password": PASSWORD}).status_code == 401


def test_inactive_gym_cannot_log_in(client, world, db):
    from gymos.db.models import Gym
    gym = db.get(Gym, world.gym_id)
    gym.is_active = False
    db.commit()
    r = client.post("/auth/login", json={"email": "trainer@irontemple.com", "password": PASSWORD})
    assert r.status_code == 401


def test_refresh_rotates_token(client, world):
    tokens = client.post("/auth/login", json={"email": "owner@irontemple.com", "password": PASSWORD}).json()

    r = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200
    rotated = r.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]

    # the old one was revoked by the rotation
    assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401
    # access tokens are not refresh tokens
    assert client.post("/auth/refresh", json={"refresh_token": rotated["access_token"]}).status_code == 401


def test_logout_revokes_refresh_token(client, world):
    tokens = client.post("/auth/login", json={"email": "owner@irontemple.com", "password": PASSWORD}).json()
    assert client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 200
    assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


def test_me_requires_token(client, world):
    assert client.get("/auth/me").status_code == 401


def test_permission_gate(client, world, auth):
    # Students have no users.read permission
    r = client.get("/users", headers=auth("student"))
    assert r.status_code == 403
    assert r.json()["detail"] == "You don't have permission to read users"
    assert client.get("/users", headers=auth("trainer")).status_code == 200


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/v1/_info").json()["service"] == "gymos"
