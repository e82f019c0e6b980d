"""OpenSearch client tests using httpx.MockTransport."""
import json

import httpx
import pytest

from patient_records.core.errors import SearchIndexError
from patient_records.services.search_index import AwsSigV4Auth, PatientSearchIndex

PATIENT = {
    "patientId": "p-1",
    "name": "John Doe",
    "address": "123 Main St",
    "conditions": ["Diabetes"],
    "allergies": ["Penicillin"],
    "createdAt": "2024-01-15T10:30:00.000000Z",
    "updatedAt": "2024-01-15T10:30:00.000000Z",
}


def _index(handler, **kwargs):
    return PatientSearchIndex(
        "https://search.example.com",
        index="patients",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestPatientSearchIndex:
    def setup_method(self):
        self.requests = []

    def test_index_patient_puts_document(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(201, json={"result": "created"})

        _index(handler).index_patient(PATIENT)
        request = self.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/patients/_doc/p-1"
        assert request.url.params["refresh"] == "true"
        assert json.loads(request.content) == PATIENT

    def test_delete_missing_document_is_not_an_error(self):
        index = _index(lambda request: httpx.Response(404, json={"result": "not_found"}))
        assert index.delete_patient("p-1") is False

    def test_delete_other_failure_raises(self):
        index = _index(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(SearchIndexError) as exc_info:
            index.delete_patient("p-1")
        assert exc_info.value.status_code == 503

    def test_search_sends_fuzzy_multi_match(self):
        def handler(request):
            self.requests.append(json.loads(request.content))
            return httpx.Response(200, json={"hits": {"hits": [{"_source": PATIENT}]}})

        results = _index(handler, max_results=100).search_by_condition("diabetis")
        assert results == [PATIENT]
        query = self.requests[0]["query"]["multi_match"]
        assert query["query"] == "diabetis"
        assert query["fuzziness"] == "AUTO"
        assert query["fields"] == ["conditions^2", "name", "address"]
        assert self.requests[0]["size"] == 100

    def test_search_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(SearchIndexError):
            _index(handler).search_by_condition("Diabetes")

    def test_search_malformed_response_raises(self):
        index = _index(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(SearchIndexError):
            index.search_by_condition("Diabetes")

    def test_ensure_index_creates_when_missing(self):
        def handler(request):
            self.requests.append(request)
            if request.method == "HEAD":
                return httpx.Response(404)
            return httpx.Response(200, json={"acknowledged": True})

        assert _index(handler).ensure_index() is True
        created = json.loads(self.requests[1].content)
        assert created["mappings"]["properties"]["conditions"]["analyzer"] == "medical_analyzer"

    def test_ensure_index_skips_existing(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(200)

        assert _index(handler).ensure_index() is False
        assert [r.method for r in self.requests] == ["HEAD"]


class _StaticCredentials:
    def get_frozen_credentials(self):
        from botocore.credentials import ReadOnlyCredentials
        return ReadOnlyCredentials("AKIDEXAMPLE", "secret", None)


class _Session:
    def get_credentials(self):
        return _StaticCredentials()


def test_sigv4_auth_signs_requests():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"hits": {"hits": []}})

    index = _index(handler, auth=AwsSigV4Auth(region="us-east-1", session=_Session()))
    index.search_by_condition("Diabetes")
    headers = seen[0].headers
    assert headers["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/")
    assert "/us-east-1/es/aws4_request" in headers["Authorization"]
    assert "X-Amz-Date" in headers
