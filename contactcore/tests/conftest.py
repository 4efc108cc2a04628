"""Shared fixtures: a fake DealCloud site and a scripted AI provider."""

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from ..ai_extractor import AIExtractor, AIProvider
from ..dealcloud_client import DealCloudClient
from ..models import DealCloudConfig

SITE = "test.dealcloud.com"


def _matches(row: Dict[str, Any], query: Dict[str, Any]) -> bool:
    if "$or" in query:
        return any(_matches(row, clause) for clause in query["$or"])
    for field, condition in query.items():
        value = str(row.get(field, ""))
        if "$contains" in condition and condition["$contains"].lower() not in value.lower():
            return False
        if "$eq" in condition and value != condition["$eq"]:
            return False
    return True


class FakeDealCloud:
    """In-memory DealCloud endpoints served through httpx.MockTransport.

    Company names are stored entity-encoded, the way the site returns them.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.companies: List[Dict[str, Any]] = []
        self.contacts: List[Dict[str, Any]] = []
        self.inserted: List[Dict[str, Any]] = []
        self.token_status = 200
        self.query_status = 200
        self.insert_status = 200
        self.expires_in = 3600
        self.tokens_issued = 0
        self.fail_transport = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_transport:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path.endswith("/oauth/token"):
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="invalid_client")
            self.tokens_issued += 1
            return httpx.Response(
                200,
                json={
                    "access_token": f"tok-{self.tokens_issued}",
                    "expires_in": self.expires_in,
                    "token_type": "Bearer",
                },
            )

        body = json.loads(request.content)
        if "/rows/query/" in path:
            if self.query_status != 200:
                return httpx.Response(self.query_status, text="query rejected")
            table = self.companies if path.endswith("/company") else self.contacts
            query = json.loads(body["query"])
            rows = [row for row in table if _matches(row, query)][: body["limit"]]
            return httpx.Response(200, json={"rows": rows, "totalRecords": len(rows)})

        if path.endswith("/rows/contact"):
            if self.insert_status != 200:
                return httpx.Response(self.insert_status, text="Email is required")
            rows = []
            for record in body:
                row = dict(record, EntryId=5000 + len(self.inserted))
                self.inserted.append(row)
                rows.append(row)
            return httpx.Response(200, json={"rows": rows})

        return httpx.Response(404, text="not found")

    def calls(self, fragment: str) -> List[httpx.Request]:
        return [r for r in self.requests if fragment in r.url.path]

    def queries(self, entry_type: str) -> List[Dict[str, Any]]:
        """Bodies of the row queries sent for ``entry_type``, query decoded."""
        bodies = []
        for request in self.calls(f"/rows/query/{entry_type}"):
            body = json.loads(request.content)
            body["query"] = json.loads(body["query"])
            bodies.append(body)
        return bodies

    def insert_bodies(self) -> List[Any]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith("/rows/contact")]

    def token_form(self, index: int = 0) -> Dict[str, str]:
        request = self.calls("/oauth/token")[index]
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class FakeProvider(AIProvider):
    """Returns scripted replies in order; an exception in the script is raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: List[tuple] = []

    async def complete(self, prompt: str, model: Optional[str] = None) -> str:
        self.calls.append((prompt, model))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo handler changes made by setup_logging() during a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def dealcloud_config():
    return DealCloudConfig(site=SITE, client_id="123", client_secret="s3cret")


@pytest.fixture
def fake_dealcloud():
    fake = FakeDealCloud()
    fake.companies = [
        {"EntryId": 101, "CompanyName": "Acme GmbH"},
        {"EntryId": 102, "CompanyName": "Beta &amp; Partner AG"},
        {"EntryId": 103, "CompanyName": "Gamma Capital"},
    ]
    fake.contacts = [
        {"EntryId": 9001, "FullName": "Erika Muster", "Email": "erika@acme.de"},
    ]
    return fake


@pytest.fixture
def make_client(dealcloud_config, fake_dealcloud):
    """Factory for clients talking to the fake site."""

    def factory(config: Optional[DealCloudConfig] = None, **kwargs) -> DealCloudClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_dealcloud.handler))
        return DealCloudClient(config or dealcloud_config, http_client=http_client, **kwargs)

    return factory


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def contact_data():
    return {
        "Anrede": "661148",
        "FirstName": "Max",
        "LastName": "Mustermann",
        "Email": "max@acme.de",
        "Employer": "101",
        "ContactType": "81391",
    }


@pytest.fixture
def contacts_reply():
    """A contact generation reply covering one new and one existing contact."""
    return json.dumps(
        {
            "contacts": [
                {
                    "Anrede": "661148",
                    "FirstName": "Max",
                    "LastName": "Mustermann",
                    "Email": "max@acme.de",
                    "Employer": "101",
                    "ContactType": "81391",
                },
                {
                    "Anrede": "661147",
                    "ProfessionalTitle": "Dr.",
                    "FirstName": "Erika",
                    "LastName": "Muster",
                    "Email": "erika@acme.de",
                    "Employer": "101",
                    "ContactType": "81389",
                    "JobTitle": "Head of M&A",
                },
            ]
        }
    )


@pytest.fixture
def names_reply():
    return json.dumps({"companies": ["Acme GmbH"]})


def extractor_with(*replies, **kwargs) -> AIExtractor:
    return AIExtractor(provider=FakeProvider(*replies), **kwargs)
