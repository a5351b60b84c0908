"""
Shared fixtures: in-memory Motor database, a network-free AddressVerifier and
an HTTPX client bound to the FastAPI app.
"""
import json
import os
import uuid
from datetime import datetime, timezone, timedelta

import bcrypt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass-123"
JWT_TEST_SECRET = "smart-locator-test-secret-0123456789abcdef"
BULK_CODE = "BULK-7788"

os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "smart_locator_test")
os.environ["JWT_SECRET"] = JWT_TEST_SECRET
os.environ["ADMIN_USERNAME"] = ADMIN_USERNAME
os.environ["ADMIN_PASSWORD_HASH"] = bcrypt.hashpw(ADMIN_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
os.environ["BULK_ACCESS_CODE"] = BULK_CODE

from database import get_db, create_indexes  # noqa: E402
from services.address_verifier import AddressVerifier, get_address_verifier  # noqa: E402
from utils import settings as settings_module  # noqa: E402
from utils.errors import ExternalServiceError  # noqa: E402

settings_module._settings_instance = None


# ==================== FAKE EXTERNAL SERVICES ====================

BODUPPAL_POSTAL = {
    "PinStatus": "Success",
    "PostOfficeList": [
        {"Name": "Boduppal", "Taluk": "Medipally", "District": "Medchal Malkajgiri", "State": "Telangana"}
    ],
}

PUTLIBOWLI_POSTAL = {
    "PinStatus": "Success",
    "PostOfficeList": [
        {"Name": "Putlibowli", "Taluk": "Nampally", "District": "Hyderabad", "State": "Telangana"}
    ],
}

GOOD_ADDRESS = "H no 12-3 sai nagar colony near apollo hospital boduppal hyderabad 500092"

GOOD_GEMINI_JSON = {
    "H.no.": "12-3",
    "Colony": "Sai Nagar Colony",
    "Locality": "Boduppal",
    "P.O.": "P.O. Boduppal",
    "Tehsil": "Tehsil Medipally",
    "DIST.": "Hyderabad",
    "State": "Telangana",
    "PIN": "500092",
    "Landmark": "Apollo Hospital",
    "Remaining": "",
    "FormattedAddress": "H.no. 12-3, Sai Nagar Colony, Boduppal, P.O. Boduppal, Tehsil Medipally, Hyderabad",
    "LocationType": "Urban Area",
    "AddressQuality": "Good",
    "LocationSuitability": "Tier 1 & 2 Cities",
}


class FakeGemini:
    """Stands in for the Gemini call; answers address and name prompts separately."""

    def __init__(self, address_json=None, cleaned_name="Ravi Kumar"):
        self.address_json = dict(address_json or GOOD_GEMINI_JSON)
        self.cleaned_name = cleaned_name
        self.raw_address_text = None
        self.fail_address = False
        self.fail_name = False
        self.prompts = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if prompt.startswith("Clean and correct the following customer name"):
            if self.fail_name:
                raise ExternalServiceError("name call failed")
            return self.cleaned_name
        if self.fail_address:
            raise ExternalServiceError("Gemini API error: quota")
        if self.raw_address_text is not None:
            return self.raw_address_text
        return "```json\n" + json.dumps(self.address_json) + "\n```"

    @property
    def address_calls(self):
        return [p for p in self.prompts if not p.startswith("Clean and correct")]


class FakeIndiaPost:
    def __init__(self, known=None):
        self.known = known if known is not None else {"500092": BODUPPAL_POSTAL, "500095": PUTLIBOWLI_POSTAL}
        self.lookups = []

    async def __call__(self, pin):
        self.lookups.append(pin)
        return self.known.get(pin, {"PinStatus": "Error"})


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def fake_india_post():
    return FakeIndiaPost()


@pytest.fixture
def verifier(fake_gemini, fake_india_post):
    return AddressVerifier(llm=fake_gemini, postal_lookup=fake_india_post)


# ==================== DATABASE ====================

@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test, with the production indexes."""
    database = AsyncMongoMockClient()[f"test_{uuid.uuid4().hex[:8]}"]
    await create_indexes(database)
    return database


def hash_pw(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=4)).decode()


@pytest.fixture
def make_client(db):
    """Factory inserting a client document directly."""

    async def _make_client(
        username: str = None,
        password: str = "client-pass",
        remaining=10,
        initial=None,
        is_active: bool = True,
        session_id: str = None,
        plan_name: str = "Standard_Monthly_10"
    ) -> dict:
        doc = {
            "id": str(uuid.uuid4()),
            "clientName": "Acme Retail",
            "username": username or f"client_{uuid.uuid4().hex[:6]}",
            "passwordHash": hash_pw(password),
            "planName": plan_name,
            "validityEnd": datetime.now(timezone.utc) + timedelta(days=30),
            "isActive": is_active,
            "bulkAccessCode": "ABC123",
            "initialCredits": remaining if initial is None else initial,
            "remainingCredits": remaining,
            "activeSessionId": session_id,
            "lastActivityAt": None,
            "createdAt": datetime.now(timezone.utc),
        }
        await db.clients.insert_one(doc)
        doc.pop("_id", None)
        doc["password"] = password
        return doc

    return _make_client


# ==================== HTTP CLIENT ====================

@pytest_asyncio.fixture
async def client(db, verifier):
    """HTTPX AsyncClient bound to the FastAPI app with the in-memory DB and fake verifier."""
    from server import app
    from routes.verify import public_rate_limiter

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_address_verifier] = lambda: verifier
    public_rate_limiter._calls.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def login_headers(client):
    """Log a client in through the API and return its Authorization header."""

    async def _login(username: str, password: str = "client-pass") -> dict:
        resp = await client.post("/api/client/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["status"] == "Success", body
        return {"Authorization": f"Bearer {body['token']}"}

    return _login


@pytest_asyncio.fixture
async def admin_headers(client):
    resp = await client.post("/api/admin/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}
