"""
Primary patient store backed by DynamoDB.

The table is keyed by ``patientId`` and carries a global secondary index on
``address``. Every write that depends on the record's existence (or absence)
is guarded by a condition expression, and botocore failures are translated
into the service error taxonomy here so callers never see raw AWS errors.
"""
import base64
import binascii
import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import settings
from ..core.errors import InvalidRequest, PatientServiceError, Unavailable

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def encode_continuation_token(last_key: Optional[Dict[str, Any]]) -> Optional[str]:
    """Encode a DynamoDB ``LastEvaluatedKey`` as an opaque URL-safe token."""
    if not last_key:
        return None
    return base64.urlsafe_b64encode(json.dumps(last_key).encode("utf-8")).decode("ascii")


def decode_continuation_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode a token from ``encode_continuation_token``.

    Only a primary-key mapping (``{"patientId": <str>}``) is accepted so a
    forged or stale token is a caller error, not a DynamoDB failure.
    """
    if not token:
        return None
    try:
        decoded = json.loads(base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidRequest("Invalid continuation token") from exc
    if not isinstance(decoded, dict) or set(decoded) != {"patientId"}:
        raise InvalidRequest("Invalid continuation token")
    if not isinstance(decoded["patientId"], str) or not decoded["patientId"]:
        raise InvalidRequest("Invalid continuation token")
    return decoded


@contextmanager
def _translate_errors(operation: str, on_condition_failed: Optional[PatientServiceError] = None):
    try:
        yield
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == CONDITIONAL_CHECK_FAILED and on_condition_failed is not None:
            raise on_condition_failed from exc
        logger.error("DynamoDB %s failed (%s): %s", operation, code, exc)
        raise Unavailable() from exc
    except BotoCoreError as exc:
        logger.error("DynamoDB %s failed: %s", operation, exc)
        raise Unavailable() from exc


class PatientStore:
    """Thin wrapper around a boto3 ``Table`` resource for patient records."""

    def __init__(self, table, address_index: str = "AddressIndex"):
        self.table = table
        self.address_index = address_index

    def put_new(self, item: Dict[str, Any], on_exists: PatientServiceError) -> None:
        """Write a new record; raise ``on_exists`` if the key is already taken."""
        with _translate_errors("put_item", on_condition_failed=on_exists):
            self.table.put_item(
                Item=item,
                ConditionExpression=Attr("patientId").not_exists(),
            )

    def get(self, patient_id: str) -> Optional[Dict[str, Any]]:
        with _translate_errors("get_item"):
            resp = self.table.get_item(Key={"patientId": patient_id})
        return resp.get("Item")

    def update_fields(
        self,
        patient_id: str,
        changes: Sequence[Tuple[str, Any]],
        on_missing: PatientServiceError,
    ) -> Dict[str, Any]:
        """Apply ``SET`` for each ``(field, value)`` pair on an existing record.

        Returns every attribute of the record after the update.
        """
        assignments = []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        for field, value in changes:
            assignments.append(f"#{field} = :{field}")
            names[f"#{field}"] = field
            values[f":{field}"] = value

        with _translate_errors("update_item", on_condition_failed=on_missing):
            resp = self.table.update_item(
                Key={"patientId": patient_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ConditionExpression=Attr("patientId").exists(),
                ReturnValues="ALL_NEW",
            )
        return resp["Attributes"]

    def delete_existing(self, patient_id: str, on_missing: PatientServiceError) -> None:
        with _translate_errors("delete_item", on_condition_failed=on_missing):
            self.table.delete_item(
                Key={"patientId": patient_id},
                ConditionExpression=Attr("patientId").exists(),
            )

    def scan_page(
        self, limit: int, start_key: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        params: Dict[str, Any] = {"Limit": limit}
        if start_key:
            params["ExclusiveStartKey"] = start_key
        with _translate_errors("scan"):
            resp = self.table.scan(**params)
        return resp.get("Items", []), resp.get("LastEvaluatedKey")

    def query_by_address(self, address: str) -> List[Dict[str, Any]]:
        return self._collect(
            "query",
            self.table.query,
            IndexName=self.address_index,
            KeyConditionExpression=Key("address").eq(address),
        )

    def scan_by_condition(self, condition: str) -> List[Dict[str, Any]]:
        """Exhaustive scan for records whose ``conditions`` list holds ``condition``."""
        return self._collect(
            "scan",
            self.table.scan,
            FilterExpression=Attr("conditions").contains(condition),
        )

    def _collect(self, operation: str, call, **params) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        while True:
            with _translate_errors(operation):
                resp = call(**params)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            params["ExclusiveStartKey"] = last_key


_store: Optional[PatientStore] = None
_store_lock = threading.Lock()


def _build_table():
    resource = boto3.resource(
        "dynamodb",
        region_name=settings.AWS_REGION,
        endpoint_url=settings.DYNAMODB_ENDPOINT_URL,
        config=Config(
            connect_timeout=settings.DYNAMODB_CONNECT_TIMEOUT,
            read_timeout=settings.DYNAMODB_READ_TIMEOUT,
            retries={"max_attempts": settings.DYNAMODB_MAX_ATTEMPTS, "mode": "standard"},
        ),
    )
    return resource.Table(settings.PATIENTS_TABLE_NAME)


def get_patient_store() -> PatientStore:
    """Return the process-wide store, creating the DynamoDB resource on first use."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = PatientStore(_build_table(), address_index=settings.ADDRESS_INDEX_NAME)
                logger.info("DynamoDB table resource initialized: %s", settings.PATIENTS_TABLE_NAME)
    return _store
