import os

# settings and the default engine are built at import time
os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gymos.api.deps import Identity, get_db
from gymos.api.roles import ROLE_TEMPLATES
from gymos.db.models import Gym, Order, Product, ProductCategory, Role, TrainerMatch, User
from gymos.db.session import Base, make_engine
from gymos.main import app
from gymos.security.utils import create_access_token, hash_password

PASSWORD = "secret123"
TEMPLATES = {t["name"]: t for t in ROLE_TEMPLATES}


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture(scope="session")
def password_hash():
    return hash_password(PASSWORD)


def _role(gym_id, name):
    tpl = TEMPLATES[name]
    return Role(gym_id=gym_id, name=name, description=tpl["description"], permissions=tpl["permissions"])


def _user(gym_id, role, email, first, password_hash):
    return User(gym_id=gym_id, role=role, email=email, password_hash=password_hash, first_name=first, last_name="Tester")


@pytest.fixture
def world(db, password_hash):
    """Two gyms; the first has owner/trainer/two students and a small catalog."""
    gym = Gym(name="Iron Temple", slug="iron-temple")
    other = Gym(name="Other Gym", slug="other-gym")
    db.add_all([gym, other])
    db.flush()

    roles = {name: _role(gym.id, name) for name in ("GymOwner", "Trainer", "Student")}
    other_owner_role = _role(other.id, "GymOwner")
    db.add_all([*roles.values(), other_owner_role])
    db.flush()

    users = {
        "owner": _user(gym.id, roles["GymOwner"], "owner@irontemple.com", "Olga", password_hash),
        "trainer": _user(gym.id, roles["Trainer"], "trainer@irontemple.com", "Theo", password_hash),
        "student": _user(gym.id, roles["Student"], "student@irontemple.com", "Sara", password_hash),
        "student2": _user(gym.id, roles["Student"], "student2@irontemple.com", "Sven", password_hash),
        "outsider": _user(other.id, other_owner_role, "owner@othergym.com", "Otto", password_hash),
    }
    db.add_all(users.values())

    cat = ProductCategory(gym_id=gym.id, name="Supplements")
    other_cat = ProductCategory(gym_id=other.id, name="Supplements")
    db.add_all([cat, other_cat])
    db.flush()

    products = {
        "protein": Product(gym_id=gym.id, category_id=cat.id, name="Protein", price=Decimal("10.00"), stock_quantity=5),
        "shaker": Product(gym_id=gym.id, category_id=cat.id, name="Shaker", price=Decimal("4.35"), stock_quantity=10),
        "retired": Product(gym_id=gym.id, category_id=cat.id, name="Old Bar", price=Decimal("1.00"),
                           stock_quantity=50, is_active=False),
        "foreign": Product(gym_id=other.id, category_id=other_cat.id, name="Protein", price=Decimal("9.00"),
                           stock_quantity=50),
    }
    db.add_all(products.values())
    db.commit()

    return SimpleNamespace(
        gym_id=gym.id,
        other_gym_id=other.id,
        category_id=cat.id,
        roles={k: v.id for k, v in roles.items()},
        users={k: v.id for k, v in users.items()},
        products={k: v.id for k, v in products.items()},
    )


@pytest.fixture
def ident(db, world):
    def make(key):
        user = db.get(User, world.users[key])
        return Identity(user_id=user.id, email=user.email, gym_id=user.gym_id, role_id=user.role_id, role=user.role.name)
    return make


@pytest.fixture
def auth(db, world):
    def make(key):
        token, _ = create_access_token(db.get(User, world.users[key]))
        return {"Authorization": f"Bearer {token}"}
    return make


@pytest.fixture
def client(session_factory):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def stock(db):
    """Current stock straight from the table, bypassing the identity map."""
    def read(product_id):
        return db.execute(select(Product.stock_quantity).where(Product.id == product_id)).scalar_one()
    return read


@pytest.fixture
def order_count(db):
    def count():
        return len(db.execute(select(Order.id)).all())
    return count


@pytest.fixture
def match(db, world):
    """Pair a student with a trainer; returns the match id."""
    def make(student, trainer="trainer", status="active"):
        m = TrainerMatch(gym_id=world.gym_id, trainer_id=world.users[trainer],
                         student_id=world.users[student], status=status)
        db.add(m)
        db.commit()
        return m.id
    return make
