import asyncio
import os
from pathlib import Path

# Point the module-level app at the in-memory store before main is imported
os.environ.setdefault("DATABASE_URL", "memory://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import MemoryStore
from errors import DeliveryError
from geocoder import GeoResult
from main import create_app

API = "/api/v1"

BOSTON = GeoResult(
    latitude=42.3601,
    longitude=-71.0589,
    formatted_address="233 Bay State Rd, Boston, MA, 02215, US",
    street="233 Bay State Rd",
    city="Boston",
    state="MA",
    zipcode="02215",
    country="US",
)

LOS_ANGELES = GeoResult(
    latitude=34.0522,
    longitude=-118.2437,
    formatted_address="Los Angeles, CA, 90001, US",
    city="Los Angeles",
    state="CA",
    zipcode="90001",
    country="US",
)

BOOTCAMP = {
    "name": "Devworks Bootcamp",
    "description": "Devworks is a full stack JavaScript Bootcamp located in the heart of Boston",
    "website": "https://devworks.com",
    "phone": "(111) 111-1111",
    "email": "enroll@devworks.com",
    "address": "233 Bay State Rd Boston MA 02215",
    "careers": ["Web Development", "UI/UX", "Business"],
    "housing": True,
    "job_assistance": True,
    "job_guarantee": False,
    "accept_gi": True,
}

COURSE = {
    "title": "Front End Web Development",
    "description": "This course will provide you with all of the essentials to become a successful frontend web developer",
    "weeks": "8",
    "tuition": 8000,
    "minimum_skill": "beginner",
    "scholarship_available": True,
}


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send(self, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body})


class FailingMailer:
    async def send(self, to, subject, body):
        raise DeliveryError("Email could not be sent")


class StubGeocoder:
    def __init__(self, places=None):
        self.places = places or {}

    async def geocode(self, address):
        return self.places.get(address, BOSTON)


def run(coro):
    """Drive a MemoryStore coroutine from a synchronous test."""
    return asyncio.run(coro)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url="memory://",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        file_upload_path=str(tmp_path / "uploads"),
        max_file_upload=1024,
        log_level="WARNING",
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def geocoder():
    return StubGeocoder({"Los Angeles CA 90001": LOS_ANGELES, "90001": LOS_ANGELES})


@pytest.fixture
def client(settings, store, mailer, geocoder):
    app = create_app(settings=settings, store=store, mailer=mailer, geocoder=geocoder)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    """Register an account and return its id, token and bearer headers.

    The session cookie is dropped so later requests only authenticate
    through the headers they pass explicitly.
    """

    def _register(name="Jane Doe", email=None, password="123456", role="user"):
        email = email or f"{name.lower().replace(' ', '.')}@example.com"
        res = client.post(
            f"{API}/auth/register",
            json={"name": name, "email": email, "password": password, "role": role},
        )
        assert res.status_code == 200, res.text
        client.cookies.clear()
        body = res.json()
        return {
            "id": body["data"]["_id"],
            "email": email,
            "token": body["token"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _register


@pytest.fixture
def admin(register, store):
    account = register(name="Site Admin")
    run(store.update_by_id("user", account["id"], {"role": "admin"}))
    return account


@pytest.fixture
def publisher(register):
    return register(name="Pat Publisher", role="publisher")


@pytest.fixture
def create_bootcamp(client):
    def _create(headers, **overrides):
        res = client.post(f"{API}/bootcamps", json={**BOOTCAMP, **overrides}, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _create


@pytest.fixture
def add_course(client):
    def _add(bootcamp_id, headers, **overrides):
        res = client.post(f"{API}/bootcamps/{bootcamp_id}/courses", json={**COURSE, **overrides}, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _add
