"""
Demo data seeder for the patient records API.

Creates a sample patient so the happy-flow walkthrough (get, search by
address, search by condition) works immediately after a fresh start.
Enabled with ``SEED_DEMO_DATA=true``.

This seeder is idempotent: a patient with the same name at the same
address is never created twice.
"""
import logging
from typing import Optional

from .models.patient import Patient, PatientCreate
from .services.patient_service import PatientService

logger = logging.getLogger(__name__)

DEMO_PATIENT = PatientCreate(
    name="John Doe",
    address="123 Main St",
    conditions=["Diabetes"],
    allergies=["Penicillin"],
)


def seed_demo_data(service: PatientService) -> Patient:
    """Create the demo patient if it does not already exist; return it."""
    existing = _find_demo_patient(service)
    if existing is not None:
        return existing

    patient = service.create(DEMO_PATIENT)
    logger.info("[seed] Created demo patient: %s (id: %s)", patient.name, patient.patientId)
    return patient


def _find_demo_patient(service: PatientService) -> Optional[Patient]:
    for patient in service.find_by_address(DEMO_PATIENT.address):
        if patient.name == DEMO_PATIENT.name:
            return patient
    return None
