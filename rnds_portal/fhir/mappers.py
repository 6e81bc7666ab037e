"""
FHIR Resource Mappers

Maps aggregate records from the relational store to FHIR R4 resources
shaped after the BR Core profiles served by the RNDS (RAC).

Mappings:
- PatientRecord → Patient
- PractitionerRecord → Practitioner
- OrganizationRecord → Organization
- EncounterRecord → Encounter
- ObservationRecord → Observation (with components)
- ConditionRecord → Condition
- AllergyIntoleranceRecord → AllergyIntolerance
- ProcedureRecord → Procedure
- MedicationStatementRecord → MedicationStatement

Mappers are pure: they never query, never raise for missing optional data
and omit every group whose source columns are empty.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from .constants import (
    ALLERGY_CLINICAL_SYSTEM,
    ALLERGY_VERIFICATION_SYSTEM,
    BR_CORE_PROFILES,
    BR_IDENTIFIER_SYSTEMS,
    CID10_SYSTEM,
    CONDITION_CATEGORY_SYSTEM,
    CONDITION_CLINICAL_SYSTEM,
    CONDITION_VERIFICATION_SYSTEM,
    DEFAULT_COUNTRY,
    DEFAULT_ENCOUNTER_CLASS,
    ENCOUNTER_CLASS_SYSTEM,
    LANGUAGE_SYSTEM,
    MARITAL_STATUS_SYSTEM,
    OBSERVATION_CATEGORY_SYSTEM,
    OBSERVATION_INTERPRETATION_SYSTEM,
)
from .records import (
    AddressRecord,
    AllergyIntoleranceRecord,
    ConditionRecord,
    ContactPointRecord,
    EncounterRecord,
    HumanNameRecord,
    IdentifierRecord,
    MedicationStatementRecord,
    ObservationComponentRecord,
    ObservationRecord,
    OrganizationRecord,
    PatientRecord,
    PractitionerRecord,
    ProcedureRecord,
)
from .values import render_value

Resource = Dict[str, Any]


# ============================================================================
# Formatting helpers
# ============================================================================

def format_instant(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a timestamp as an ISO-8601 UTC instant with milliseconds.

    Naive datetimes are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def format_date(value: Optional[Union[date, datetime]]) -> Optional[str]:
    """Serialize a date (or the date part of a datetime) as YYYY-MM-DD."""
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None or an empty list/dict."""
    return {key: val for key, val in data.items() if val is not None and val != [] and val != {}}


def coded_concept(
    code: Optional[str],
    system: Optional[str] = None,
    display: Optional[str] = None,
    text: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Wrap a raw code into a CodeableConcept.

    Args:
        code: Raw code value; without it only the text is kept
        system: Code system URI
        display: Coding display
        text: Concept text; falls back to display

    Returns:
        CodeableConcept dict or None
    """
    if not code:
        label = text or display
        return {"text": label} if label else None
    concept: Dict[str, Any] = {"coding": [compact({"system": system, "code": code, "display": display})]}
    if text or display:
        concept["text"] = text or display
    return concept


def period(start: Optional[datetime], end: Optional[datetime]) -> Optional[Dict[str, str]]:
    """Period with whichever bounds are present, None when neither is."""
    if start is None and end is None:
        return None
    return compact({"start": format_instant(start), "end": format_instant(end)})


def annotation(note: Optional[str]) -> Optional[List[Dict[str, str]]]:
    return [{"text": note}] if note else None


def profile_meta(resource_type: str) -> Dict[str, List[str]]:
    return {"profile": [BR_CORE_PROFILES[resource_type]]}


# ============================================================================
# Reference builder
# ============================================================================

def external_id(record: Any) -> Optional[str]:
    """External id of a record, falling back to its internal id."""
    return record.fhir_id or record.id


def primary_name(names: Sequence[HumanNameRecord]) -> Optional[str]:
    """Display text of the first recorded human name."""
    if not names:
        return None
    name = names[0]
    if name.text:
        return name.text
    parts = [part for part in (name.given, name.family) if part]
    return " ".join(parts) or None


def build_reference(
    resource_type: str,
    related: Any = None,
    fallback_id: Optional[str] = None,
) -> Optional[Dict[str, str]]:
    """
    Build a Reference to another resource.

    Args:
        resource_type: Target resource type (e.g. "Patient")
        related: Loaded related aggregate, if any
        fallback_id: Internal id of the target when the aggregate was not loaded

    Returns:
        {"reference": "<Type>/<id>", "display": ...} or None without any id
    """
    if related is not None:
        target_id = external_id(related)
        if isinstance(related, OrganizationRecord):
            display = related.name
        else:
            display = primary_name(getattr(related, "names", []))
    else:
        target_id = fallback_id
        display = None

    if not target_id:
        return None
    return compact({"reference": f"{resource_type}/{target_id}", "display": display})


# ============================================================================
# Shared element mappers
# ============================================================================

def map_identifiers(rows: Sequence[IdentifierRecord], with_type: bool = True) -> List[Dict[str, Any]]:
    identifiers = []
    for row in rows:
        identifier = {
            "use": row.use or "official",
            "system": row.system,
            "value": row.value,
        }
        if with_type and row.type_code:
            identifier["type"] = coded_concept(row.type_code, display=row.type_display)
        identifiers.append(compact(identifier))
    return identifiers


def append_national_identifier(
    identifiers: List[Dict[str, Any]],
    kind: str,
    value: Optional[str],
) -> None:
    """
    Append a CPF/CNS/CNES identifier unless one is already present.

    An identifier counts as present when it has the same system or the
    same value.
    """
    if not value:
        return
    system = BR_IDENTIFIER_SYSTEMS[kind]
    if any(item.get("system") == system or item.get("value") == value for item in identifiers):
        return
    identifiers.append({"use": "official", "system": system, "value": value})


def map_names(rows: Sequence[HumanNameRecord]) -> List[Dict[str, Any]]:
    return [
        compact({
            "use": row.use or "official",
            "text": row.text,
            "family": row.family,
            "given": row.given.split() if row.given else None,
            "period": period(row.period_start, row.period_end),
        })
        for row in rows
    ]


def map_telecoms(rows: Sequence[ContactPointRecord]) -> List[Dict[str, Any]]:
    return [
        compact({"system": row.system, "value": row.value, "use": row.use, "rank": row.rank})
        for row in rows
    ]


def map_addresses(rows: Sequence[AddressRecord]) -> List[Dict[str, Any]]:
    return [
        compact({
            "use": row.use,
            "type": row.type,
            "text": row.text,
            "line": [line for line in (row.line1, row.line2) if line],
            "city": row.city,
            "district": row.district,
            "state": row.state,
            "postalCode": row.postal_code,
            "country": row.country or DEFAULT_COUNTRY,
        })
        for row in rows
    ]


# ============================================================================
# Resource mappers
# ============================================================================

class PatientMapper:
    """Maps PatientRecord to FHIR BR Core Patient."""

    @staticmethod
    def map(patient: PatientRecord) -> Resource:
        """
        Convert a patient aggregate to a Patient resource.

        Args:
            patient: Patient with identifiers, names, telecoms and addresses

        Returns:
            Patient resource dict
        """
        identifiers = map_identifiers(patient.identifiers)
        append_national_identifier(identifiers, "CPF", patient.cpf)
        append_national_identifier(identifiers, "CNS", patient.cns)

        resource = {
            "resourceType": "Patient",
            "id": patient.fhir_id,
            "meta": profile_meta("Patient"),
            "identifier": identifiers,
            "active": patient.active,
            "name": map_names(patient.names),
            "telecom": map_telecoms(patient.telecoms),
            "gender": patient.gender,
            "birthDate": format_date(patient.birth_date),
            "deceasedBoolean": True if patient.deceased else None,
            "address": map_addresses(patient.addresses),
            "maritalStatus": coded_concept(patient.marital_status, MARITAL_STATUS_SYSTEM),
        }

        # Preferred language
        if patient.language:
            resource["communication"] = [{
                "language": coded_concept(patient.language, LANGUAGE_SYSTEM),
                "preferred": True,
            }]

        return compact(resource)


class PractitionerMapper:
    """Maps PractitionerRecord to FHIR BR Core Practitioner."""

    @staticmethod
    def map(practitioner: PractitionerRecord) -> Resource:
        identifiers = map_identifiers(practitioner.identifiers, with_type=False)
        append_national_identifier(identifiers, "CPF", practitioner.cpf)
        append_national_identifier(identifiers, "CNS", practitioner.cns)

        resource = {
            "resourceType": "Practitioner",
            "id": practitioner.fhir_id,
            "meta": profile_meta("Practitioner"),
            "identifier": identifiers,
            "active": practitioner.active,
            "name": map_names(practitioner.names),
            "telecom": map_telecoms(practitioner.telecoms),
            "gender": practitioner.gender,
            "birthDate": format_date(practitioner.birth_date),
        }

        # Qualification: CBO occupation plus the licensing council registration
        if practitioner.qualification_code:
            qualification: Dict[str, Any] = {
                "code": coded_concept(
                    practitioner.qualification_code,
                    BR_IDENTIFIER_SYSTEMS["CBO"],
                    practitioner.qualification_text,
                ),
            }
            if practitioner.council_number:
                qualification["identifier"] = [compact({
                    "use": "official",
                    "type": coded_concept(practitioner.council_type),
                    "value": practitioner.council_number,
                })]
                council = "-".join(
                    part for part in (practitioner.council_type, practitioner.council_uf) if part
                )
                if council:
                    qualification["issuer"] = {"display": council}
            resource["qualification"] = [qualification]

        return compact(resource)


class OrganizationMapper:
    """Maps OrganizationRecord to FHIR BR Core Organization."""

    @staticmethod
    def map(organization: OrganizationRecord) -> Resource:
        identifiers = map_identifiers(organization.identifiers, with_type=False)
        append_national_identifier(identifiers, "CNES", organization.cnes)

        resource = {
            "resourceType": "Organization",
            "id": organization.fhir_id,
            "meta": profile_meta("Organization"),
            "identifier": identifiers,
            "active": organization.active,
            "name": organization.name,
            "alias": [organization.alias] if organization.alias else None,
            "telecom": map_telecoms(organization.telecoms),
            "address": map_addresses(organization.addresses),
        }

        if organization.type_code:
            resource["type"] = [coded_concept(organization.type_code, display=organization.type_display)]

        return compact(resource)


class EncounterMapper:
    """Maps EncounterRecord to FHIR BR Core Encounter."""

    @staticmethod
    def map(encounter: EncounterRecord) -> Resource:
        """
        Convert an encounter aggregate to an Encounter resource.

        The class defaults to ambulatory when not recorded. Participant and
        service provider references are only emitted when the related
        practitioner / organization is known.
        """
        resource = {
            "resourceType": "Encounter",
            "id": encounter.fhir_id,
            "meta": profile_meta("Encounter"),
            "identifier": map_identifiers(encounter.identifiers, with_type=False),
            "status": encounter.status,
            "class": compact({
                "system": ENCOUNTER_CLASS_SYSTEM,
                "code": encounter.class_code or DEFAULT_ENCOUNTER_CLASS,
                "display": encounter.class_display,
            }),
            "subject": build_reference("Patient", encounter.patient, encounter.patient_id),
            "period": period(encounter.start, encounter.end),
            "serviceProvider": build_reference(
                "Organization", encounter.service_provider, encounter.service_provider_id
            ),
        }

        if encounter.type_code:
            resource["type"] = [coded_concept(encounter.type_code, display=encounter.type_display)]

        individual = build_reference("Practitioner", encounter.practitioner, encounter.practitioner_id)
        if individual:
            resource["participant"] = [{"individual": individual}]

        if encounter.reason_code:
            resource["reasonCode"] = [coded_concept(encounter.reason_code, display=encounter.reason_display)]

        return compact(resource)


class ObservationMapper:
    """Maps ObservationRecord (and its components) to FHIR BR Core Observation."""

    @staticmethod
    def map_component(component: ObservationComponentRecord) -> Dict[str, Any]:
        """Map one component; its value is resolved independently of the parent."""
        mapped = {
            "code": coded_concept(component.code, component.code_system, component.code_display),
        }
        mapped.update(render_value(component))
        return compact(mapped)

    @staticmethod
    def map(observation: ObservationRecord) -> Resource:
        """
        Convert an observation aggregate to an Observation resource.

        Args:
            observation: Observation with components and optional relations

        Returns:
            Observation resource dict
        """
        resource = {
            "resourceType": "Observation",
            "id": observation.fhir_id,
            "meta": profile_meta("Observation"),
            "status": observation.status,
            "code": coded_concept(
                observation.code, observation.code_system, observation.code_display
            ),
            "subject": build_reference("Patient", observation.patient, observation.patient_id),
            "encounter": build_reference("Encounter", observation.encounter, observation.encounter_id),
            "effectiveDateTime": format_instant(observation.effective_date_time),
            "issued": format_instant(observation.issued),
            "note": annotation(observation.note),
        }

        if observation.category_code:
            resource["category"] = [coded_concept(
                observation.category_code,
                OBSERVATION_CATEGORY_SYSTEM,
                observation.category_display,
            )]

        performer = build_reference("Practitioner", observation.performer, observation.performer_id)
        if performer:
            resource["performer"] = [performer]

        resource.update(render_value(observation))

        # Interpretation (code and/or free text)
        if observation.interpretation_code or observation.interpretation_text:
            interpretation: Dict[str, Any] = {}
            if observation.interpretation_code:
                interpretation["coding"] = [{
                    "system": OBSERVATION_INTERPRETATION_SYSTEM,
                    "code": observation.interpretation_code,
                }]
            if observation.interpretation_text:
                interpretation["text"] = observation.interpretation_text
            resource["interpretation"] = [interpretation]

        if observation.components:
            resource["component"] = [
                ObservationMapper.map_component(component) for component in observation.components
            ]

        return compact(resource)


class ConditionMapper:
    """Maps ConditionRecord to FHIR BR Core Condition."""

    @staticmethod
    def map(condition: ConditionRecord) -> Resource:
        resource = {
            "resourceType": "Condition",
            "id": condition.fhir_id,
            "meta": profile_meta("Condition"),
            "clinicalStatus": coded_concept(
                condition.clinical_status, CONDITION_CLINICAL_SYSTEM, text=condition.clinical_status
            ),
            "verificationStatus": coded_concept(
                condition.verification_status,
                CONDITION_VERIFICATION_SYSTEM,
                text=condition.verification_status,
            ),
            "severity": coded_concept(condition.severity, text=condition.severity),
            "code": coded_concept(
                condition.code, condition.code_system or CID10_SYSTEM, condition.code_display
            ),
            "subject": build_reference("Patient", condition.patient, condition.patient_id),
            "onsetDateTime": format_instant(condition.onset_date_time),
            "abatementDateTime": format_instant(condition.abatement_date_time),
            "recordedDate": format_instant(condition.recorded_date),
            "recorder": build_reference("Practitioner", condition.recorder, condition.recorder_id),
            "note": annotation(condition.note),
        }

        if condition.category_code:
            resource["category"] = [coded_concept(condition.category_code, CONDITION_CATEGORY_SYSTEM)]

        return compact(resource)


class AllergyIntoleranceMapper:
    """Maps AllergyIntoleranceRecord to FHIR BR Core AllergyIntolerance."""

    @staticmethod
    def map(allergy: AllergyIntoleranceRecord) -> Resource:
        resource = {
            "resourceType": "AllergyIntolerance",
            "id": allergy.fhir_id,
            "meta": profile_meta("AllergyIntolerance"),
            "clinicalStatus": coded_concept(
                allergy.clinical_status_code,
                ALLERGY_CLINICAL_SYSTEM,
                text=allergy.clinical_status_text or allergy.clinical_status_code,
            ),
            "verificationStatus": coded_concept(
                allergy.verification_status,
                ALLERGY_VERIFICATION_SYSTEM,
                text=allergy.verification_status,
            ),
            "type": allergy.type,
            "category": [allergy.category] if allergy.category else None,
            "criticality": allergy.criticality,
            "code": coded_concept(allergy.code, allergy.code_system, allergy.code_display),
            "patient": build_reference("Patient", allergy.patient, allergy.patient_id),
            "recordedDate": format_instant(allergy.recorded_date),
            "recorder": build_reference("Practitioner", allergy.recorder, allergy.recorder_id),
            "lastOccurrence": format_instant(allergy.last_occurrence),
            "note": annotation(allergy.note),
        }
        return compact(resource)


class ProcedureMapper:
    """Maps ProcedureRecord to FHIR BR Core Procedure."""

    @staticmethod
    def map(procedure: ProcedureRecord) -> Resource:
        """
        Convert a procedure aggregate to a Procedure resource.

        Both bounds give performedPeriod; a start alone gives
        performedDateTime; an end alone gives an open-start period.
        """
        resource = {
            "resourceType": "Procedure",
            "id": procedure.fhir_id,
            "meta": profile_meta("Procedure"),
            "status": procedure.status or "completed",
            "category": coded_concept(procedure.category_code),
            "code": coded_concept(procedure.code, procedure.code_system, procedure.code_display),
            "subject": build_reference("Patient", procedure.patient, procedure.patient_id),
            "encounter": build_reference("Encounter", procedure.encounter, procedure.encounter_id),
            "note": annotation(procedure.note),
        }

        if procedure.performed_start and not procedure.performed_end:
            resource["performedDateTime"] = format_instant(procedure.performed_start)
        else:
            resource["performedPeriod"] = period(procedure.performed_start, procedure.performed_end)

        actor = build_reference("Practitioner", procedure.performer, procedure.performer_id)
        if actor:
            resource["performer"] = [{"actor": actor}]

        return compact(resource)


class MedicationStatementMapper:
    """Maps MedicationStatementRecord to FHIR BR Core MedicationStatement."""

    @staticmethod
    def map(medication: MedicationStatementRecord) -> Resource:
        # A statement recorded as not taken ("n") is reported with status not-taken
        status = "not-taken" if medication.taken == "n" else (medication.status or "active")

        resource = {
            "resourceType": "MedicationStatement",
            "id": medication.fhir_id,
            "meta": profile_meta("MedicationStatement"),
            "status": status,
            "category": coded_concept(medication.category_code, text=medication.category_code),
            "medicationCodeableConcept": coded_concept(
                medication.medication_code, display=medication.medication_display
            ),
            "subject": build_reference("Patient", medication.patient, medication.patient_id),
            "effectivePeriod": period(medication.effective_start, medication.effective_end),
            "informationSource": build_reference(
                "Practitioner", medication.recorder, medication.recorder_id
            ),
            "note": annotation(medication.note),
        }

        if medication.dosage or medication.route:
            resource["dosage"] = [compact({
                "text": medication.dosage,
                "route": {"text": medication.route} if medication.route else None,
            })]

        return compact(resource)
