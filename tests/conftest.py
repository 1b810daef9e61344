import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import os
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set testing environment variables before the app reads its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"
os.environ["BROADCAST_BACKEND"] = "memory"

from clinic_queue.main import app
from clinic_queue.core.database import get_db, Base
from clinic_queue.models.patient import Patient

# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client():
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def make_patients(db):
    """Create patients by display name and return their ids in order."""
    def _make(*names):
        ids = []
        for name in names:
            first_name, last_name = name.split(" ", 1)
            patient = Patient(first_name=first_name, last_name=last_name)
            db.add(patient)
            db.commit()
            ids.append(patient.id)
        return ids
    return _make
