"""
FHIR R4 Conformance Tests

Parses mapped resources with the fhir.resources R4B models (the R4-compatible
release of the library) to check that the emitted JSON is structurally valid.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.encounter import Encounter
from fhir.resources.R4B.medicationstatement import MedicationStatement
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.organization import Organization
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.procedure import Procedure

from rnds_portal.fhir.bundler import FHIRBundler
from rnds_portal.fhir.mappers import (
    AllergyIntoleranceMapper,
    ConditionMapper,
    EncounterMapper,
    MedicationStatementMapper,
    ObservationMapper,
    OrganizationMapper,
    PatientMapper,
    PractitionerMapper,
    ProcedureMapper,
)
from rnds_portal.fhir.records import (
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

START = datetime(2024, 3, 10, 14, 0, tzinfo=timezone.utc)

SAMPLE_PATIENT = PatientRecord(
    id="p-internal",
    fhir_id="patient-123",
    cpf="12345678910",
    cns="898001160660001",
    active=True,
    gender="female",
    birth_date=date(1985, 3, 14),
    marital_status="M",
    deceased=False,
    language="pt-BR",
    identifiers=[IdentifierRecord(system="urn:oid:2.16.840.1.113883.13.236", value="123", type_code="MR")],
    names=[HumanNameRecord(text="Maria Oliveira", family="Oliveira", given="Maria Clara",
                           period_start=datetime(2000, 1, 1, tzinfo=timezone.utc))],
    telecoms=[ContactPointRecord(system="phone", value="+55 11 98888-7777", use="mobile", rank=1)],
    addresses=[AddressRecord(use="home", line1="Rua Vergueiro, 1500", city="São Paulo", state="SP",
                             postal_code="04101-000")],
)

SAMPLE_PRACTITIONER = PractitionerRecord(
    id="pr-internal",
    fhir_id="pract-carlos",
    cpf="98765432100",
    gender="male",
    qualification_code="225125",
    qualification_text="Médico clínico",
    council_type="CRM",
    council_number="123456",
    council_uf="SP",
    names=[HumanNameRecord(given="Carlos", family="Souza")],
)

SAMPLE_ORGANIZATION = OrganizationRecord(
    id="o-internal",
    fhir_id="org-ubs",
    cnes="2077485",
    active=True,
    name="UBS Vila Mariana",
    alias="UBS VM",
    type_code="02",
    type_display="Centro de Saúde/Unidade Básica",
)

SAMPLE_ENCOUNTER = EncounterRecord(
    id="e-internal",
    fhir_id="enc-001",
    status="finished",
    type_code="consulta",
    reason_code="I10",
    reason_display="Hipertensão",
    start=START,
    end=START + timedelta(hours=1),
    patient_id=SAMPLE_PATIENT.id,
    patient=SAMPLE_PATIENT,
    practitioner=SAMPLE_PRACTITIONER,
    service_provider=SAMPLE_ORGANIZATION,
)


class TestAdministrativeResources:

    def test_patient(self):
        patient = Patient(**PatientMapper.map(SAMPLE_PATIENT))

        assert patient.id == "patient-123"
        assert len(patient.identifier) == 3
        assert patient.name[0].given == ["Maria", "Clara"]

    def test_sparse_patient(self):
        Patient(**PatientMapper.map(PatientRecord(id="x", fhir_id="patient-x")))

    def test_practitioner(self):
        practitioner = Practitioner(**PractitionerMapper.map(SAMPLE_PRACTITIONER))
        assert practitioner.qualification[0].issuer.display == "CRM-SP"

    def test_organization(self):
        organization = Organization(**OrganizationMapper.map(SAMPLE_ORGANIZATION))
        assert organization.alias == ["UBS VM"]


class TestClinicalResources:

    def test_encounter(self):
        encounter = Encounter(**EncounterMapper.map(SAMPLE_ENCOUNTER))

        assert encounter.class_fhir.code == "AMB"
        assert encounter.serviceProvider.reference == "Organization/org-ubs"

    @pytest.mark.parametrize("value", [
        {"value_quantity": Decimal("98.5"), "value_quantity_unit": "mg/dL"},
        {"value_string": "negativo"},
        {"value_code_system": "http://snomed.info/sct", "value_code": "8517006", "value_code_display": "Ex-fumante"},
    ])
    def test_observation_value_variants(self, value):
        record = ObservationRecord(
            id="obs-internal",
            fhir_id="obs-1",
            status="final",
            category_code="laboratory",
            code_system="http://loinc.org",
            code="2339-0",
            code_display="Glucose",
            effective_date_time=START,
            issued=START,
            interpretation_code="N",
            note="Em jejum",
            patient_id=SAMPLE_PATIENT.id,
            encounter=SAMPLE_ENCOUNTER,
            performer=SAMPLE_PRACTITIONER,
            **value,
        )
        Observation(**ObservationMapper.map(record))

    def test_observation_components(self):
        record = ObservationRecord(
            id="obs-internal",
            fhir_id="obs-bp",
            status="final",
            code="85354-9",
            code_system="http://loinc.org",
            patient_id=SAMPLE_PATIENT.id,
            components=[
                ObservationComponentRecord(code="8480-6", code_system="http://loinc.org",
                                           value_quantity=Decimal("145"), value_quantity_unit="mm[Hg]"),
                ObservationComponentRecord(code="8462-4", code_system="http://loinc.org",
                                           value_quantity=Decimal("92"), value_quantity_unit="mm[Hg]"),
            ],
        )
        observation = Observation(**ObservationMapper.map(record))
        assert len(observation.component) == 2

    def test_condition(self):
        record = ConditionRecord(
            id="c-internal",
            fhir_id="cond-1",
            clinical_status="resolved",
            verification_status="confirmed",
            category_code="encounter-diagnosis",
            severity="moderate",
            code="A09",
            code_display="Gastroenterite",
            onset_date_time=START,
            abatement_date_time=START + timedelta(days=5),
            recorded_date=START,
            note="Resolvida",
            patient_id=SAMPLE_PATIENT.id,
            recorder=SAMPLE_PRACTITIONER,
        )
        Condition(**ConditionMapper.map(record))

    def test_allergy_intolerance(self):
        record = AllergyIntoleranceRecord(
            id="a-internal",
            fhir_id="allergy-1",
            clinical_status_code="active",
            verification_status="confirmed",
            type="allergy",
            category="medication",
            criticality="high",
            code_display="Dipirona",
            recorded_date=START,
            last_occurrence=START,
            patient_id=SAMPLE_PATIENT.id,
            patient=SAMPLE_PATIENT,
        )
        AllergyIntolerance(**AllergyIntoleranceMapper.map(record))

    @pytest.mark.parametrize("end", [None, START + timedelta(minutes=30)])
    def test_procedure(self, end):
        record = ProcedureRecord(
            id="proc-internal",
            fhir_id="proc-1",
            code="0211020036",
            code_display="Eletrocardiograma",
            performed_start=START,
            performed_end=end,
            patient_id=SAMPLE_PATIENT.id,
            encounter=SAMPLE_ENCOUNTER,
            performer=SAMPLE_PRACTITIONER,
        )
        Procedure(**ProcedureMapper.map(record))

    @pytest.mark.parametrize("taken", ["y", "n"])
    def test_medication_statement(self, taken):
        record = MedicationStatementRecord(
            id="m-internal",
            fhir_id="med-1",
            status="active",
            medication_code="BR0270612",
            medication_display="Losartana 50 mg",
            dosage="1 comprimido ao dia",
            route="oral",
            effective_start=START,
            taken=taken,
            patient_id=SAMPLE_PATIENT.id,
            recorder=SAMPLE_PRACTITIONER,
        )
        statement = MedicationStatement(**MedicationStatementMapper.map(record))
        assert statement.status == ("active" if taken == "y" else "not-taken")


class TestBundleConformance:

    def test_searchset_bundle(self):
        bundler = FHIRBundler("searchset")
        bundler.add_entry("Patient", "patient-123", PatientMapper.map(SAMPLE_PATIENT))
        bundler.add_entry("Encounter", "enc-001", EncounterMapper.map(SAMPLE_ENCOUNTER))

        bundle = Bundle(**bundler.finalize())

        assert bundle.type == "searchset"
        assert bundle.total == 2
        assert bundle.entry[1].fullUrl == "Encounter/enc-001"
