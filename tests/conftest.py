import uuid
import pytest
from sqlmodel import Session

from forge.database import create_db_engine, init_db
from forge.models.app import App
from forge.repositories.app_repository import AppRepository

@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'forge-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()

@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session

@pytest.fixture
def make_app(session):
    def _make(**overrides) -> App:
        fields = {
            "id": str(uuid.uuid4()),
            "owner_id": "owner-1",
            "name": "Corner Bakery",
            "url": "https://bakery.example.com",
            "primary_color": "#FF5500",
        }
        fields.update(overrides)
        return AppRepository(session).create(App(**fields))
    return _make

class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

@pytest.fixture
def clock():
    return FakeClock()
