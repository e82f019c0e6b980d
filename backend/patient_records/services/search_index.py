"""
OpenSearch client for the secondary patient search index.

The index is a derived projection of the DynamoDB table used to answer
fuzzy condition searches. Requests go over httpx and are signed with AWS
SigV4 (service ``es``) using the default boto3 credential chain. When
``OPENSEARCH_DOMAIN`` is empty the index is disabled and
``get_search_index()`` returns ``None``.
"""
import json
import logging
import threading
from typing import Any, Dict, List, Optional

import boto3
import httpx
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest

from ..core.config import settings
from ..core.errors import SearchIndexError

logger = logging.getLogger(__name__)

# Fields searched for a condition query; conditions weigh double
CONDITION_SEARCH_FIELDS = ["conditions^2", "name", "address"]

INDEX_DEFINITION: Dict[str, Any] = {
    "settings": {
        "index": {
            "number_of_shards": 1,
            "number_of_replicas": 1,
            "refresh_interval": "1s",
        },
        "analysis": {
            "analyzer": {
                "default": {"type": "standard"},
                "medical_analyzer": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "asciifolding"],
                },
            },
        },
    },
    "mappings": {
        "properties": {
            "patientId": {"type": "keyword"},
            "name": {
                "type": "text",
                "analyzer": "standard",
                "fields": {"keyword": {"type": "keyword"}},
            },
            "address": {
                "type": "text",
                "analyzer": "standard",
                "fields": {"keyword": {"type": "keyword"}},
            },
            "conditions": {
                "type": "text",
                "analyzer": "medical_analyzer",
                "fields": {"keyword": {"type": "keyword"}},
            },
            "allergies": {
                "type": "text",
                "analyzer": "medical_analyzer",
                "fields": {"keyword": {"type": "keyword"}},
            },
            "createdAt": {"type": "date"},
            "updatedAt": {"type": "date"},
        }
    },
}


class AwsSigV4Auth(httpx.Auth):
    """httpx auth flow that signs each request with botocore's SigV4 signer."""

    requires_request_body = True

    def __init__(self, region: str, service: str = "es", session: Optional[boto3.Session] = None):
        self.region = region
        self.service = service
        self.session = session or boto3.Session()

    def auth_flow(self, request: httpx.Request):
        credentials = self.session.get_credentials()
        if credentials is None:
            raise SearchIndexError("No AWS credentials available to sign OpenSearch request")
        aws_request = AWSRequest(
            method=request.method,
            url=str(request.url),
            data=request.content,
            headers={"Content-Type": request.headers.get("Content-Type", "application/json")},
        )
        SigV4Auth(credentials.get_frozen_credentials(), self.service, self.region).add_auth(aws_request)
        request.headers.update(dict(aws_request.headers.items()))
        yield request


class PatientSearchIndex:
    """Index, delete and search patient documents in a single OpenSearch index."""

    def __init__(
        self,
        base_url: str,
        index: str = "patients",
        timeout: float = 5.0,
        max_results: int = 100,
        auth: Optional[httpx.Auth] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.index = index
        self.max_results = max_results
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            auth=auth,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def _request(self, method: str, path: str, body: Optional[Dict] = None, **params) -> httpx.Response:
        content = json.dumps(body) if body is not None else None
        try:
            resp = self._client.request(method, path, content=content, params=params or None)
        except httpx.HTTPError as exc:
            raise SearchIndexError(f"OpenSearch {method} {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise SearchIndexError(
                f"OpenSearch {method} {path} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp

    def ensure_index(self) -> bool:
        """Create the index with its mapping if missing. Returns True if created."""
        try:
            self._request("HEAD", f"/{self.index}")
            logger.info("OpenSearch index '%s' already exists.", self.index)
            return False
        except SearchIndexError as exc:
            if exc.status_code != 404:
                raise
        try:
            self._request("PUT", f"/{self.index}", INDEX_DEFINITION)
        except SearchIndexError as exc:
            if "resource_already_exists" in str(exc):
                logger.info("OpenSearch index '%s' already exists.", self.index)
                return False
            raise
        logger.info("OpenSearch index '%s' created.", self.index)
        return True

    def index_patient(self, patient: Dict[str, Any]) -> None:
        self._request("PUT", f"/{self.index}/_doc/{patient['patientId']}", patient, refresh="true")
        logger.debug("Patient %s indexed in OpenSearch.", patient["patientId"])

    def delete_patient(self, patient_id: str) -> bool:
        """Remove a document. Returns False when it was already absent."""
        try:
            self._request("DELETE", f"/{self.index}/_doc/{patient_id}", refresh="true")
        except SearchIndexError as exc:
            if exc.status_code == 404:
                return False
            raise
        logger.debug("Patient %s removed from OpenSearch.", patient_id)
        return True

    def search_by_condition(self, condition: str) -> List[Dict[str, Any]]:
        body = {
            "query": {
                "multi_match": {
                    "query": condition,
                    "fields": CONDITION_SEARCH_FIELDS,
                    "fuzziness": "AUTO",
                    "operator": "or",
                }
            },
            "size": self.max_results,
            "from": 0,
        }
        resp = self._request("POST", f"/{self.index}/_search", body)
        try:
            hits = resp.json()["hits"]["hits"]
        except (ValueError, KeyError, TypeError) as exc:
            raise SearchIndexError(f"Unexpected OpenSearch response: {exc}") from exc
        return [hit["_source"] for hit in hits]

    def close(self) -> None:
        self._client.close()


_search_index: Optional[PatientSearchIndex] = None
_search_lock = threading.Lock()


def get_search_index() -> Optional[PatientSearchIndex]:
    """Return the process-wide index client, or None when search is not configured."""
    global _search_index
    if not settings.OPENSEARCH_DOMAIN:
        return None
    if _search_index is None:
        with _search_lock:
            if _search_index is None:
                _search_index = PatientSearchIndex(
                    base_url=f"https://{settings.OPENSEARCH_DOMAIN}:443",
                    index=settings.OPENSEARCH_INDEX,
                    timeout=settings.OPENSEARCH_TIMEOUT,
                    max_results=settings.OPENSEARCH_MAX_RESULTS,
                    auth=AwsSigV4Auth(region=settings.AWS_REGION),
                )
                logger.info("OpenSearch client initialized for domain: %s", settings.OPENSEARCH_DOMAIN)
    return _search_index
