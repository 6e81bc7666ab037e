"""
Aggregate records consumed by the FHIR mapping layer.

Each record is an entity row plus its eagerly loaded related rows, as
delivered by the persistence layer. Records are built from ORM objects with
``Model.model_validate(orm_obj)`` (``from_attributes``) or directly from
keyword arguments in tests.

Relation arrays default to empty lists and related aggregates to ``None``,
so the mappers are total over these types.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class Record(BaseModel):
    """Base for all aggregate records."""

    model_config = {"from_attributes": True, "frozen": True}


# ============================================================================
# Shared relation rows
# ============================================================================

class IdentifierRecord(Record):
    use: Optional[str] = None
    system: Optional[str] = None
    value: str
    type_code: Optional[str] = None
    type_display: Optional[str] = None


class HumanNameRecord(Record):
    use: Optional[str] = None
    text: Optional[str] = None
    family: Optional[str] = None
    given: Optional[str] = Field(None, description="Given names separated by whitespace")
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class ContactPointRecord(Record):
    system: Optional[str] = None
    value: Optional[str] = None
    use: Optional[str] = None
    rank: Optional[int] = None


class AddressRecord(Record):
    use: Optional[str] = None
    type: Optional[str] = None
    text: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


# ============================================================================
# Administrative aggregates
# ============================================================================

class PatientRecord(Record):
    """Patient identity record with its identifier/name/telecom/address rows."""
    id: str
    fhir_id: Optional[str] = None
    cpf: Optional[str] = None
    cns: Optional[str] = None
    active: Optional[bool] = None
    gender: Optional[str] = None
    birth_date: Optional[Union[date, datetime]] = None
    marital_status: Optional[str] = None
    deceased: Optional[bool] = None
    language: Optional[str] = None
    identifiers: List[IdentifierRecord] = Field(default_factory=list)
    names: List[HumanNameRecord] = Field(default_factory=list)
    telecoms: List[ContactPointRecord] = Field(default_factory=list)
    addresses: List[AddressRecord] = Field(default_factory=list)


class PractitionerRecord(Record):
    """Practitioner identity record plus professional qualification."""
    id: str
    fhir_id: Optional[str] = None
    cpf: Optional[str] = None
    cns: Optional[str] = None
    active: Optional[bool] = None
    gender: Optional[str] = None
    birth_date: Optional[Union[date, datetime]] = None
    qualification_code: Optional[str] = None
    qualification_text: Optional[str] = None
    council_type: Optional[str] = None
    council_number: Optional[str] = None
    council_uf: Optional[str] = None
    identifiers: List[IdentifierRecord] = Field(default_factory=list)
    names: List[HumanNameRecord] = Field(default_factory=list)
    telecoms: List[ContactPointRecord] = Field(default_factory=list)


class OrganizationRecord(Record):
    """Health facility registered in CNES."""
    id: str
    fhir_id: Optional[str] = None
    cnes: Optional[str] = None
    active: Optional[bool] = None
    name: Optional[str] = None
    alias: Optional[str] = None
    type_code: Optional[str] = None
    type_display: Optional[str] = None
    identifiers: List[IdentifierRecord] = Field(default_factory=list)
    telecoms: List[ContactPointRecord] = Field(default_factory=list)
    addresses: List[AddressRecord] = Field(default_factory=list)


# ============================================================================
# Clinical aggregates
# ============================================================================

class EncounterRecord(Record):
    id: str
    fhir_id: Optional[str] = None
    status: Optional[str] = None
    class_code: Optional[str] = None
    class_display: Optional[str] = None
    type_code: Optional[str] = None
    type_display: Optional[str] = None
    reason_code: Optional[str] = None
    reason_display: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    patient_id: str
    practitioner_id: Optional[str] = None
    service_provider_id: Optional[str] = None
    identifiers: List[IdentifierRecord] = Field(default_factory=list)
    patient: Optional[PatientRecord] = None
    practitioner: Optional[PractitionerRecord] = None
    service_provider: Optional[OrganizationRecord] = None


class ObservationComponentRecord(Record):
    """Sub-measurement of an observation (e.g. systolic/diastolic)."""
    code_system: Optional[str] = None
    code: Optional[str] = None
    code_display: Optional[str] = None
    value_quantity: Optional[Decimal] = None
    value_quantity_unit: Optional[str] = None
    value_string: Optional[str] = None
    value_code_system: Optional[str] = None
    value_code: Optional[str] = None
    value_code_display: Optional[str] = None


class ObservationRecord(Record):
    id: str
    fhir_id: Optional[str] = None
    status: Optional[str] = None
    category_code: Optional[str] = None
    category_display: Optional[str] = None
    code_system: Optional[str] = None
    code: Optional[str] = None
    code_display: Optional[str] = None
    effective_date_time: Optional[datetime] = None
    issued: Optional[datetime] = None
    value_quantity: Optional[Decimal] = None
    value_quantity_unit: Optional[str] = None
    value_string: Optional[str] = None
    value_code_system: Optional[str] = None
    value_code: Optional[str] = None
    value_code_display: Optional[str] = None
    interpretation_code: Optional[str] = None
    interpretation_text: Optional[str] = None
    note: Optional[str] = None
    patient_id: str
    encounter_id: Optional[str] = None
    performer_id: Optional[str] = None
    components: List[ObservationComponentRecord] = Field(default_factory=list)
    patient: Optional[PatientRecord] = None
    encounter: Optional[EncounterRecord] = None
    performer: Optional[PractitionerRecord] = None


class ConditionRecord(Record):
    id: str
    fhir_id: Optional[str] = None
    clinical_status: Optional[str] = None
    verification_status: Optional[str] = None
    category_code: Optional[str] = None
    severity: Optional[str] = None
    code_system: Optional[str] = None
    code: Optional[str] = None
    code_display: Optional[str] = None
    onset_date_time: Optional[datetime] = None
    abatement_date_time: Optional[datetime] = None
    recorded_date: Optional[datetime] = None
    note: Optional[str] = None
    patient_id: str
    recorder_id: Optional[str] = None
    patient: Optional[PatientRecord] = None
    recorder: Optional[PractitionerRecord] = None


class AllergyIntoleranceRecord(Record):
    id: str
    fhir_id: Optional[str] = None
    clinical_status_code: Optional[str] = None
    clinical_status_text: Optional[str] = None
    verification_status: Optional[str] = None
    type: Optional[str] = Field(None, description="allergy | intolerance")
    category: Optional[str] = None
    criticality: Optional[str] = None
    code_system: Optional[str] = None
    code: Optional[str] = None
    code_display: Optional[str] = None
    recorded_date: Optional[datetime] = None
    last_occurrence: Optional[datetime] = None
    note: Optional[str] = None
    patient_id: str
    recorder_id: Optional[str] = None
    patient: Optional[PatientRecord] = None
    recorder: Optional[PractitionerRecord] = None


class ProcedureRecord(Record):
    id: str
    fhir_id: Optional[str] = None
    status: Optional[str] = None
    category_code: Optional[str] = None
    code_system: Optional[str] = None
    code: Optional[str] = None
    code_display: Optional[str] = None
    performed_start: Optional[datetime] = None
    performed_end: Optional[datetime] = None
    note: Optional[str] = None
    patient_id: str
    encounter_id: Optional[str] = None
    performer_id: Optional[str] = None
    patient: Optional[PatientRecord] = None
    encounter: Optional[EncounterRecord] = None
    performer: Optional[PractitionerRecord] = None


class MedicationStatementRecord(Record):
    id: str
    fhir_id: Optional[str] = None
    status: Optional[str] = None
    category_code: Optional[str] = None
    medication_code: Optional[str] = None
    medication_display: Optional[str] = None
    dosage: Optional[str] = None
    route: Optional[str] = None
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None
    taken: Optional[str] = Field(None, description="y | n | unk | na")
    note: Optional[str] = None
    patient_id: str
    recorder_id: Optional[str] = None
    patient: Optional[PatientRecord] = None
    recorder: Optional[PractitionerRecord] = None


class PatientHistory(BaseModel):
    """A patient aggregate together with its bounded clinical collections."""
    patient: PatientRecord
    encounters: List[EncounterRecord] = Field(default_factory=list)
    observations: List[ObservationRecord] = Field(default_factory=list)
    conditions: List[ConditionRecord] = Field(default_factory=list)
    allergies: List[AllergyIntoleranceRecord] = Field(default_factory=list)
    procedures: List[ProcedureRecord] = Field(default_factory=list)
    medications: List[MedicationStatementRecord] = Field(default_factory=list)
