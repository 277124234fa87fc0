import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from canteen import db, main, models  # noqa: F401
from canteen.mailer import outbox
from canteen.models import ROLE_MANAGER
from tests.factories import FIXED_NOW, MANAGER_PASSWORD, make_item, make_user


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def empty_outbox():
    outbox.clear()
    yield
    outbox.clear()


@pytest.fixture
def biryani(session):
    return make_item(session, name="Chicken Biryani", price=120, category="Main Course",
                     is_veg=False, cuisine="Indian", preparation_time=25)


@pytest.fixture
def dosa(session):
    return make_item(session)


@pytest.fixture
def student(session):
    return make_user(session)


@pytest.fixture
def manager(session):
    return make_user(session, email="boss@campus.test", password=MANAGER_PASSWORD,
                     full_name="Canteen Manager", role=ROLE_MANAGER)


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(main, "configure_logging", lambda: None)
    monkeypatch.setattr(main, "SEED_SAMPLE_MENU", False)
    monkeypatch.setattr(main, "now_local", lambda: FIXED_NOW)
    monkeypatch.setattr("canteen.orders.now_local", lambda: FIXED_NOW)
    with TestClient(main.app) as client:
        yield client
