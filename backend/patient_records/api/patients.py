"""Patient endpoints. Writes require a Cognito bearer token; reads are public."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..core.config import settings
from ..core.errors import InvalidRequest, NotFound
from ..core.security import AuthenticatedUser, get_current_user
from ..models.patient import PatientCreate, PatientUpdate
from ..services.patient_service import PatientService, get_patient_service
from .responses import ok

router = APIRouter(prefix="/patients", tags=["patients"])


def _required(value: Optional[str], name: str) -> str:
    if not value or not value.strip():
        raise InvalidRequest(f"{name.capitalize()} query parameter is required")
    return value


@router.get("/search/address")
def find_patients_by_address(
    address: Optional[str] = None,
    service: PatientService = Depends(get_patient_service),
):
    """Exact match on the address index."""
    return ok(service.find_by_address(_required(address, "address")))


@router.get("/search/condition")
def find_patients_by_condition(
    condition: Optional[str] = None,
    service: PatientService = Depends(get_patient_service),
):
    """Fuzzy search through OpenSearch, or a table scan when it is unavailable."""
    return ok(service.find_by_condition(_required(condition, "condition")))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_patient(
    patient_in: PatientCreate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: PatientService = Depends(get_patient_service),
):
    return ok(service.create(patient_in), status_code=status.HTTP_201_CREATED)


@router.get("")
def list_patients(
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    lastKey: Optional[str] = None,
    service: PatientService = Depends(get_patient_service),
):
    """Unordered page of patients. Pass the returned ``lastKey`` back to continue."""
    page = service.list(limit, lastKey)
    return ok(page.model_dump(exclude_none=True))


@router.get("/{patient_id}")
def get_patient(
    patient_id: str,
    service: PatientService = Depends(get_patient_service),
):
    patient = service.get(patient_id)
    if patient is None:
        raise NotFound()
    return ok(patient)


@router.put("/{patient_id}")
def update_patient(
    patient_id: str,
    patient_in: PatientUpdate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: PatientService = Depends(get_patient_service),
):
    """Partial update; only the supplied fields change."""
    return ok(service.update(patient_id, patient_in))


@router.delete("/{patient_id}")
def delete_patient(
    patient_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: PatientService = Depends(get_patient_service),
):
    service.delete(patient_id)
    return ok({"patientId": patient_id})
