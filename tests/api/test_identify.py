"""
API tests for POST /identify.

Requests run against the real application with the in-memory store from
conftest, so every test starts from an empty contact table.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta

import pytest
from prometheus_client import REGISTRY

from reconciliation.identity.store import ContactStore, get_store_provider
from reconciliation.identity.types import LinkPrecedence
from reconciliation.kernel.errors import StoreError

pytestmark = [pytest.mark.api, pytest.mark.asyncio]


async def _identify(client, **body):
    response = await client.post("/identify", json=body)
    assert response.status_code == 200, response.text
    return response.json()["contact"]


class TestIdentify:
    async def test_unknown_identifiers_create_primary(self, async_client, memory_store):
        contact = await _identify(async_client, email="lorraine@hillvalley.edu", phoneNumber="123456")

        assert contact == {
            "primaryContactId": 1,
            "emails": ["lorraine@hillvalley.edu"],
            "phoneNumbers": ["123456"],
            "secondaryContactIds": [],
        }
        assert len(memory_store.records) == 1

    async def test_email_only_creates_primary_without_phone(self, async_client):
        contact = await _identify(async_client, email="a@x.com", phoneNumber=None)

        assert contact["emails"] == ["a@x.com"]
        assert contact["phoneNumbers"] == []
        assert contact["secondaryContactIds"] == []

    async def test_new_email_on_known_phone_creates_secondary(self, async_client, memory_store):
        await _identify(async_client, email="lorraine@hillvalley.edu", phoneNumber="123456")

        contact = await _identify(async_client, email="mcfly@hillvalley.edu", phoneNumber="123456")

        assert contact == {
            "primaryContactId": 1,
            "emails": ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
            "phoneNumbers": ["123456"],
            "secondaryContactIds": [2],
        }
        secondary = memory_store.get(2)
        assert secondary.link_precedence == LinkPrecedence.SECONDARY
        assert secondary.linked_id == 1

    async def test_partial_submission_returns_whole_cluster(self, async_client):
        await _identify(async_client, email="lorraine@hillvalley.edu", phoneNumber="123456")
        await _identify(async_client, email="mcfly@hillvalley.edu", phoneNumber="123456")

        for body in (
            {"phoneNumber": "123456"},
            {"email": "lorraine@hillvalley.edu"},
            {"email": "mcfly@hillvalley.edu", "phoneNumber": None},
        ):
            contact = await _identify(async_client, **body)
            assert contact["primaryContactId"] == 1
            assert contact["emails"] == ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"]
            assert contact["secondaryContactIds"] == [2]

    async def test_repeated_submission_is_idempotent(self, async_client, memory_store):
        first = await _identify(async_client, email="a@x.com", phoneNumber="555")
        second = await _identify(async_client, email="a@x.com", phoneNumber="555")

        assert second == first
        assert len(memory_store.records) == 1

    async def test_linking_two_primaries_demotes_the_newer(self, async_client, memory_store, fake_clock):
        await _identify(async_client, email="george@hillvalley.edu", phoneNumber="919191")
        fake_clock.advance(timedelta(minutes=1))
        await _identify(async_client, email="biffsucks@hillvalley.edu", phoneNumber="717171")

        contact = await _identify(async_client, email="george@hillvalley.edu", phoneNumber="717171")

        assert contact == {
            "primaryContactId": 1,
            "emails": ["george@hillvalley.edu", "biffsucks@hillvalley.edu"],
            "phoneNumbers": ["919191", "717171"],
            "secondaryContactIds": [2],
        }
        assert len(memory_store.records) == 2
        demoted = memory_store.get(2)
        assert demoted.link_precedence == LinkPrecedence.SECONDARY
        assert demoted.linked_id == 1

    async def test_merge_flattens_secondaries_of_demoted_primary(self, async_client, memory_store, fake_clock):
        await _identify(async_client, email="a@x.com")
        fake_clock.advance(timedelta(minutes=1))
        await _identify(async_client, phoneNumber="555")
        await _identify(async_client, email="c@x.com", phoneNumber="555")

        await _identify(async_client, email="a@x.com", phoneNumber="555")

        assert memory_store.get(3).linked_id == 1
        assert all(r.linked_id in (None, 1) for r in memory_store.records)

    async def test_numeric_phone_number_is_accepted(self, async_client):
        response = await async_client.post("/identify", json={"phoneNumber": 123456})

        assert response.status_code == 200
        assert response.json()["contact"]["phoneNumbers"] == ["123456"]

    async def test_primary_values_lead_the_lists(self, async_client):
        await _identify(async_client, email="p@x.com", phoneNumber="100")
        await _identify(async_client, email="s@x.com", phoneNumber="100")

        contact = await _identify(async_client, email="s@x.com", phoneNumber="200")

        assert contact["emails"][0] == "p@x.com"
        assert contact["phoneNumbers"][0] == "100"


def _outcome_count(outcome: str) -> float:
    value = REGISTRY.get_sample_value("reconciliation_identify_requests_total", {"outcome": outcome})
    return value or 0.0


class TestIdentifyErrors:
    @pytest.mark.parametrize(
        "body",
        [{}, {"email": None, "phoneNumber": None}, {"email": "", "phoneNumber": ""}],
    )
    async def test_missing_identifiers_return_400(self, async_client, memory_store, body):
        response = await async_client.post("/identify", json=body)

        assert response.status_code == 400
        payload = response.json()
        assert payload["detail"] == "At least one of email or phoneNumber must be provided"
        assert payload["code"] == "request.validation_error"
        assert payload["request_id"] == response.headers["X-Request-ID"]
        assert memory_store.records == []

    async def test_malformed_field_types_return_422(self, async_client):
        response = await async_client.post("/identify", json={"email": {"nested": True}})

        assert response.status_code == 422
        assert response.json()["code"] == "http.validation_error"

    async def test_failed_commit_is_counted_as_error(self, app, async_client, memory_store):
        @asynccontextmanager
        async def provide_failing_commit():
            yield memory_store
            raise StoreError()

        app.dependency_overrides[get_store_provider] = lambda: provide_failing_commit
        errors_before = _outcome_count("error")
        created_before = _outcome_count("created_primary")

        response = await async_client.post("/identify", json={"email": "commit@x.com"})

        assert response.status_code == 503
        assert _outcome_count("error") == errors_before + 1
        assert _outcome_count("created_primary") == created_before

    async def test_store_failure_returns_503(self, app, async_client):
        class UnavailableStore(ContactStore):
            async def find_by_email_or_phone(self, email, phone_number):
                raise StoreError()

            async def find_by_linked_ids(self, ids):
                raise StoreError()

            async def find_by_ids(self, ids):
                raise StoreError()

            async def find_by_ids_ordered_by_creation(self, ids):
                raise StoreError()

            async def insert(self, *, email, phone_number, linked_id, link_precedence):
                raise StoreError()

            async def update_link(self, contact_id, *, linked_id, link_precedence):
                raise StoreError()

            async def update_linked_id(self, filter_linked_id, new_linked_id):
                raise StoreError()

        @asynccontextmanager
        async def provide_unavailable():
            yield UnavailableStore()

        app.dependency_overrides[get_store_provider] = lambda: provide_unavailable

        response = await async_client.post("/identify", json={"email": "a@x.com"})

        assert response.status_code == 503
        assert response.json()["code"] == "store.unavailable"
        assert response.json()["detail"] == "Contact store unavailable"


class TestRoot:
    async def test_root_reports_running(self, async_client):
        response = await async_client.get("/")

        assert response.status_code == 200
        assert response.json()["message"] == "Identity Reconciliation API is running"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
