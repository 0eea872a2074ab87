import os

os.environ["DATABASE_URL"] = "sqlite://"

import httpx
import pytest
from flask_jwt_extended import create_access_token

import app as app_module
from models import User, db
from thingspeak import ThingSpeakClient

BASE_URL = "https://api.thingspeak.com"


def feed(created_at, moisture=600, pump=1, light=400, temperature=22.5, humidity=55, trigger=0, entry_id=1):
    """Build a feed entry the way ThingSpeak serializes it (fields are strings)."""
    return {
        "created_at": created_at,
        "entry_id": entry_id,
        "field1": str(moisture),
        "field2": str(light),
        "field3": str(temperature),
        "field4": str(humidity),
        "field5": str(pump),
        "field6": str(trigger),
    }


class FakeThingSpeak:
    """Stand-in for the ThingSpeak REST API behind an httpx.MockTransport."""

    def __init__(self):
        self.feeds = []
        self.update_body = '{"entry_id": 42}'
        self.fail_with = None
        self.requests = []

    def handler(self, request):
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="error")
        if request.method == "GET" and request.url.path.endswith("/feeds.json"):
            results = int(request.url.params.get("results", 100))
            # ThingSpeak returns the latest `results` entries, oldest first
            return httpx.Response(200, json={"channel": {}, "feeds": self.feeds[-results:]})
        if request.method == "POST" and request.url.path == "/update.json":
            return httpx.Response(200, text=self.update_body)
        return httpx.Response(404, text="-1")

    def client(self):
        return ThingSpeakClient(BASE_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def flask_app():
    app = app_module.app
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def owner(flask_app):
    user = User(email="grower@example.com", password_hash="x")
    db.session.add(user)
    db.session.commit()
    return user.id


@pytest.fixture
def provider(monkeypatch):
    fake = FakeThingSpeak()
    monkeypatch.setattr(app_module, "thingspeak_client", fake.client)
    return fake


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def auth_headers(owner):
    token = create_access_token(identity=str(owner))
    return {"Authorization": f"Bearer {token}"}
