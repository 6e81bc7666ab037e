"""
FHIR Mapping Module

Maps aggregate records from the relational store into BR Core (RNDS) FHIR R4
resources and assembles them into Bundles.

Components:
- records: aggregate record types consumed by the mappers
- values: observation value resolution (quantity / string / coded)
- mappers: one mapper per resource type plus reference building
- bundler: FHIR Bundle assembler
"""
from .bundler import FHIRBundler
from .mappers import (
    AllergyIntoleranceMapper,
    ConditionMapper,
    EncounterMapper,
    MedicationStatementMapper,
    ObservationMapper,
    OrganizationMapper,
    PatientMapper,
    PractitionerMapper,
    ProcedureMapper,
    build_reference,
)

__all__ = [
    "FHIRBundler",
    "PatientMapper",
    "PractitionerMapper",
    "OrganizationMapper",
    "EncounterMapper",
    "ObservationMapper",
    "ConditionMapper",
    "AllergyIntoleranceMapper",
    "ProcedureMapper",
    "MedicationStatementMapper",
    "build_reference",
]
