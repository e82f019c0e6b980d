"""Shared fixtures: in-memory stand-ins for DynamoDB and OpenSearch."""
import copy
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from patient_records.core.errors import SearchIndexError, Unavailable
from patient_records.core.security import AuthenticatedUser, get_current_user
from patient_records.main import app
from patient_records.services.patient_service import PatientService, get_patient_service

AUTH_HEADERS = {"Authorization": "Bearer test-token"}


class FakePatientStore:
    """Dict-backed store with the same conditional semantics as PatientStore."""

    def __init__(self):
        self.items = {}
        self.unavailable = False
        self.scans = 0

    def _check(self):
        if self.unavailable:
            raise Unavailable()

    def put_new(self, item, on_exists):
        self._check()
        if item["patientId"] in self.items:
            raise on_exists
        self.items[item["patientId"]] = copy.deepcopy(item)

    def get(self, patient_id):
        self._check()
        item = self.items.get(patient_id)
        return copy.deepcopy(item) if item else None

    def update_fields(self, patient_id, changes, on_missing):
        self._check()
        if patient_id not in self.items:
            raise on_missing
        for field, value in changes:
            self.items[patient_id][field] = copy.deepcopy(value)
        return copy.deepcopy(self.items[patient_id])

    def delete_existing(self, patient_id, on_missing):
        self._check()
        if patient_id not in self.items:
            raise on_missing
        del self.items[patient_id]

    def scan_page(self, limit, start_key=None):
        self._check()
        ids = list(self.items)
        if start_key:
            ids = ids[ids.index(start_key["patientId"]) + 1:]
        page = ids[:limit]
        last_key = {"patientId": page[-1]} if len(ids) > limit else None
        return [copy.deepcopy(self.items[i]) for i in page], last_key

    def query_by_address(self, address):
        self._check()
        return [copy.deepcopy(i) for i in self.items.values() if i["address"] == address]

    def scan_by_condition(self, condition):
        self._check()
        self.scans += 1
        return [copy.deepcopy(i) for i in self.items.values() if condition in i["conditions"]]


class FakeSearchIndex:
    """Search index double; case-insensitive substring matching stands in for fuzziness."""

    def __init__(self):
        self.docs = {}
        self.fail_writes = False
        self.fail_search = False
        self.searches = 0

    def index_patient(self, patient):
        if self.fail_writes:
            raise SearchIndexError("index unavailable", status_code=503)
        self.docs[patient["patientId"]] = copy.deepcopy(patient)

    def delete_patient(self, patient_id):
        if self.fail_writes:
            raise SearchIndexError("index unavailable", status_code=503)
        return self.docs.pop(patient_id, None) is not None

    def search_by_condition(self, condition):
        self.searches += 1
        if self.fail_search:
            raise SearchIndexError("search timed out")
        needle = condition.lower()
        return [
            copy.deepcopy(doc)
            for doc in self.docs.values()
            if any(needle in c.lower() for c in doc["conditions"])
        ]


class TickingClock:
    """Returns a strictly later timestamp on every call."""

    def __init__(self, start=datetime(2024, 1, 15, 10, 30)):
        self.current = start

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@pytest.fixture()
def store():
    return FakePatientStore()


@pytest.fixture()
def search_index():
    return FakeSearchIndex()


@pytest.fixture()
def service(store, search_index):
    return PatientService(store, search_index, clock=TickingClock())


@pytest.fixture()
def client(service):
    """API client with the service and the token check replaced by fakes."""
    app.dependency_overrides[get_patient_service] = lambda: service
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(sub="user-1", username="nurse")
    yield TestClient(app)
    app.dependency_overrides.clear()
