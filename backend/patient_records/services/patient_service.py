"""
Patient record service: CRUD and search orchestration.

DynamoDB is the source of truth. The OpenSearch index is a best-effort
projection: it is written after every successful primary write, and any
failure there is logged and discarded. Condition search prefers the index
and falls back to an exhaustive table scan whenever the index is missing or
errors.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..core.errors import Conflict, InvalidRequest, NotFound
from ..models.patient import Patient, PatientCreate, PatientPage, PatientUpdate, utc_timestamp
from .patient_store import (
    PatientStore,
    decode_continuation_token,
    encode_continuation_token,
    get_patient_store,
)
from .search_index import PatientSearchIndex, get_search_index

logger = logging.getLogger(__name__)


@dataclass
class BestEffortResult:
    """Outcome of a secondary-index write. Never raised, only logged."""
    operation: str
    patient_id: str
    succeeded: bool
    skipped: bool = False
    error: Optional[str] = None


class PatientService:
    def __init__(
        self,
        store: PatientStore,
        search_index: Optional[PatientSearchIndex] = None,
        clock: Callable[[], str] = utc_timestamp,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.store = store
        self.search_index = search_index
        self.clock = clock
        self.id_factory = id_factory
        self.last_index_result: Optional[BestEffortResult] = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, data: PatientCreate) -> Patient:
        now = self.clock()
        patient = Patient(
            patientId=self.id_factory(),
            name=data.name,
            address=data.address,
            conditions=data.conditions,
            allergies=data.allergies,
            createdAt=now,
            updatedAt=now,
        )
        item = patient.model_dump()
        self.store.put_new(item, on_exists=Conflict(f"Patient {patient.patientId} already exists"))
        logger.info("Created patient %s", patient.patientId)

        self._mirror(item)
        return patient

    def update(self, patient_id: str, data: PatientUpdate) -> Patient:
        changes = data.changes()
        if not changes:
            raise InvalidRequest("No fields to update")

        changes.append(("updatedAt", self.clock()))
        attributes = self.store.update_fields(patient_id, changes, on_missing=NotFound())
        logger.info("Updated patient %s (%s)", patient_id, ", ".join(f for f, _ in changes[:-1]))

        self._mirror(attributes)
        return Patient(**attributes)

    def delete(self, patient_id: str) -> None:
        self.store.delete_existing(patient_id, on_missing=NotFound())
        logger.info("Deleted patient %s", patient_id)

        self._unmirror(patient_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, patient_id: str) -> Optional[Patient]:
        item = self.store.get(patient_id)
        return Patient(**item) if item else None

    def list(self, limit: int, continuation_token: Optional[str] = None) -> PatientPage:
        start_key = decode_continuation_token(continuation_token)
        items, last_key = self.store.scan_page(limit, start_key)
        return PatientPage(
            patients=[Patient(**item) for item in items],
            lastKey=encode_continuation_token(last_key),
        )

    def find_by_address(self, address: str) -> List[Patient]:
        return [Patient(**item) for item in self.store.query_by_address(address)]

    def find_by_condition(self, condition: str) -> List[Patient]:
        if self.search_index is not None:
            try:
                hits = self.search_index.search_by_condition(condition)
                logger.info("Found %d patients for condition '%s' in OpenSearch", len(hits), condition)
                return [Patient(**hit) for hit in hits]
            except Exception as exc:
                logger.warning("OpenSearch search failed, falling back to DynamoDB scan: %s", exc)
        else:
            logger.info("OpenSearch not configured; scanning DynamoDB for condition '%s'", condition)

        return [Patient(**item) for item in self.store.scan_by_condition(condition)]

    # ------------------------------------------------------------------
    # Secondary index (best-effort)
    # ------------------------------------------------------------------

    def _mirror(self, item: Dict) -> BestEffortResult:
        patient_id = item["patientId"]
        if self.search_index is None:
            return self._record(BestEffortResult("index", patient_id, succeeded=False, skipped=True))
        try:
            self.search_index.index_patient(item)
        except Exception as exc:
            logger.warning("Failed to index patient %s in OpenSearch: %s", patient_id, exc)
            return self._record(BestEffortResult("index", patient_id, succeeded=False, error=str(exc)))
        return self._record(BestEffortResult("index", patient_id, succeeded=True))

    def _unmirror(self, patient_id: str) -> BestEffortResult:
        if self.search_index is None:
            return self._record(BestEffortResult("delete", patient_id, succeeded=False, skipped=True))
        try:
            # An already-missing document counts as removed
            self.search_index.delete_patient(patient_id)
        except Exception as exc:
            logger.warning("Failed to delete patient %s from OpenSearch: %s", patient_id, exc)
            return self._record(BestEffortResult("delete", patient_id, succeeded=False, error=str(exc)))
        return self._record(BestEffortResult("delete", patient_id, succeeded=True))

    def _record(self, result: BestEffortResult) -> BestEffortResult:
        self.last_index_result = result
        return result


def get_patient_service() -> PatientService:
    """FastAPI dependency wiring the shared store and index clients."""
    return PatientService(get_patient_store(), get_search_index())
