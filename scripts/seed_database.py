#!/usr/bin/env python3
"""
Database seeding script for the patient portal

Loads demo organizations, practitioners and patients (with portal
credentials and clinical history) so the portal can be exercised end to end.

Usage:
    python scripts/seed_database.py
"""
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add parent directory to path to import rnds_portal modules
sys.path.append(str(Path(__file__).parent.parent))

from rnds_portal.auth import DEMO_PASSWORD, hash_password
from rnds_portal.database import SessionLocal, engine
from rnds_portal.fhir.constants import BR_IDENTIFIER_SYSTEMS
from rnds_portal.models import (
    Address,
    AllergyIntolerance,
    Base,
    Condition,
    ContactPoint,
    Encounter,
    HumanName,
    Identifier,
    MedicationStatement,
    Observation,
    ObservationComponent,
    Organization,
    Patient,
    PatientCredential,
    Practitioner,
    Procedure,
)

LOINC = "http://loinc.org"

# Create all tables
Base.metadata.create_all(bind=engine)


def days_ago(days: int, hour: int = 9) -> datetime:
    now = datetime.now(timezone.utc).replace(hour=hour, minute=0, second=0, microsecond=0)
    return now - timedelta(days=days)


def seed_organizations(db):
    ubs = Organization(
        fhir_id="org-ubs-vila-mariana",
        cnes="2077485",
        name="UBS Vila Mariana",
        alias="UBS VM",
        type_code="02",
        type_display="Centro de Saúde/Unidade Básica",
        telecoms=[ContactPoint(system="phone", value="+55 11 5549-0000", use="work")],
        addresses=[Address(use="work", line1="Rua Domingos de Morais, 2000", city="São Paulo",
                           state="SP", postal_code="04010-100")],
    )
    hospital = Organization(
        fhir_id="org-hospital-sao-paulo",
        cnes="2077396",
        name="Hospital São Paulo",
        type_code="05",
        type_display="Hospital Geral",
    )
    db.add_all([ubs, hospital])
    return ubs, hospital


def seed_practitioners(db):
    doctor = Practitioner(
        fhir_id="pract-carlos-souza",
        cpf="98765432100",
        cns="702004817352390",
        gender="male",
        qualification_code="225125",
        qualification_text="Médico clínico",
        council_type="CRM",
        council_number="123456",
        council_uf="SP",
        names=[HumanName(text="Dr. Carlos Souza", family="Souza", given="Carlos")],
    )
    nurse = Practitioner(
        fhir_id="pract-ana-lima",
        cpf="11122233344",
        gender="female",
        qualification_code="223505",
        qualification_text="Enfermeiro",
        council_type="COREN",
        council_number="654321",
        council_uf="SP",
        names=[HumanName(text="Ana Lima", family="Lima", given="Ana")],
    )
    db.add_all([doctor, nurse])
    return doctor, nurse


def seed_demo_patient(db, ubs, hospital, doctor, nurse):
    """The demo patient used by the portal login"""
    patient = Patient(
        id="patient-mock-123",
        fhir_id="patient-123",
        cpf="12345678910",
        cns="898001160660001",
        active=True,
        gender="female",
        birth_date=date(1985, 3, 14),
        marital_status="M",
        language="pt-BR",
        identifiers=[Identifier(use="official", system=BR_IDENTIFIER_SYSTEMS["CPF"], value="12345678910",
                                type_code="TAX", type_display="CPF")],
        names=[HumanName(use="official", text="Maria Oliveira", family="Oliveira", given="Maria")],
        telecoms=[
            ContactPoint(system="phone", value="+55 11 98888-7777", use="mobile", rank=1),
            ContactPoint(system="email", value="maria.oliveira@example.com", use="home", rank=2),
        ],
        addresses=[Address(use="home", line1="Rua Vergueiro, 1500", line2="Apto 42", district="Vila Mariana",
                           city="São Paulo", state="SP", postal_code="04101-000")],
    )
    patient.credential = PatientCredential(username=patient.cpf, password_hash=hash_password(DEMO_PASSWORD))
    db.add(patient)

    checkup = Encounter(
        fhir_id="enc-checkup-001",
        status="finished",
        class_code="AMB",
        class_display="ambulatory",
        type_code="consulta",
        type_display="Consulta médica",
        reason_code="I10",
        reason_display="Hipertensão essencial",
        start=days_ago(30),
        end=days_ago(30, hour=10),
        patient=patient,
        practitioner=doctor,
        service_provider=ubs,
    )
    emergency = Encounter(
        fhir_id="enc-emergency-002",
        status="finished",
        class_code="EMER",
        class_display="emergency",
        start=days_ago(120, hour=22),
        end=days_ago(119, hour=3),
        patient=patient,
        practitioner=doctor,
        service_provider=hospital,
    )
    db.add_all([checkup, emergency])

    db.add_all([
        Observation(
            fhir_id="obs-bp-001",
            status="final",
            category_code="vital-signs",
            category_display="Vital Signs",
            code_system=LOINC,
            code="85354-9",
            code_display="Blood pressure panel",
            effective_date_time=days_ago(30),
            issued=days_ago(30, hour=10),
            interpretation_code="H",
            interpretation_text="Pressão elevada",
            patient=patient,
            encounter=checkup,
            performer=nurse,
            components=[
                ObservationComponent(code_system=LOINC, code="8480-6", code_display="Systolic blood pressure",
                                     value_quantity=Decimal("145"), value_quantity_unit="mm[Hg]"),
                ObservationComponent(code_system=LOINC, code="8462-4", code_display="Diastolic blood pressure",
                                     value_quantity=Decimal("92"), value_quantity_unit="mm[Hg]"),
            ],
        ),
        Observation(
            fhir_id="obs-glucose-002",
            status="final",
            category_code="laboratory",
            category_display="Laboratory",
            code_system=LOINC,
            code="2339-0",
            code_display="Glucose [Mass/volume] in Blood",
            effective_date_time=days_ago(29),
            value_quantity=Decimal("98.5"),
            value_quantity_unit="mg/dL",
            interpretation_code="N",
            patient=patient,
            encounter=checkup,
        ),
        Observation(
            fhir_id="obs-smoking-003",
            status="final",
            category_code="social-history",
            code_system=LOINC,
            code="72166-2",
            code_display="Tobacco smoking status",
            effective_date_time=days_ago(30),
            value_code_system="http://snomed.info/sct",
            value_code="8517006",
            value_code_display="Ex-fumante",
            patient=patient,
        ),
    ])

    db.add_all([
        Condition(
            fhir_id="cond-hypertension",
            clinical_status="active",
            verification_status="confirmed",
            category_code="problem-list-item",
            severity="moderate",
            code="I10",
            code_display="Hipertensão essencial (primária)",
            onset_date_time=days_ago(400),
            recorded_date=days_ago(30),
            patient=patient,
            recorder=doctor,
        ),
        Condition(
            fhir_id="cond-gastroenteritis",
            clinical_status="resolved",
            verification_status="confirmed",
            category_code="encounter-diagnosis",
            code="A09",
            code_display="Diarreia e gastroenterite de origem infecciosa presumível",
            onset_date_time=days_ago(121),
            abatement_date_time=days_ago(110),
            recorded_date=days_ago(120),
            patient=patient,
            recorder=doctor,
        ),
    ])

    db.add(AllergyIntolerance(
        fhir_id="allergy-dipyrone",
        clinical_status_code="active",
        clinical_status_text="Ativa",
        verification_status="confirmed",
        type="allergy",
        category="medication",
        criticality="high",
        code_display="Dipirona",
        recorded_date=days_ago(120),
        last_occurrence=days_ago(120, hour=23),
        note="Urticária generalizada",
        patient=patient,
        recorder=doctor,
    ))

    db.add_all([
        Procedure(
            fhir_id="proc-ecg",
            status="completed",
            code="0211020036",
            code_display="Eletrocardiograma",
            performed_start=days_ago(30),
            patient=patient,
            encounter=checkup,
            performer=doctor,
        ),
        Procedure(
            fhir_id="proc-hydration",
            status="completed",
            code_display="Hidratação venosa",
            performed_start=days_ago(120, hour=22),
            performed_end=days_ago(119, hour=2),
            patient=patient,
            encounter=emergency,
            performer=nurse,
        ),
    ])

    db.add_all([
        MedicationStatement(
            fhir_id="med-losartan",
            status="active",
            medication_code="BR0270612",
            medication_display="Losartana potássica 50 mg",
            dosage="1 comprimido ao dia",
            route="oral",
            effective_start=days_ago(400),
            taken="y",
            patient=patient,
            recorder=doctor,
        ),
        MedicationStatement(
            fhir_id="med-dipyrone",
            status="stopped",
            medication_display="Dipirona 500 mg",
            effective_start=days_ago(121),
            effective_end=days_ago(120),
            taken="n",
            note="Suspensa após reação alérgica",
            patient=patient,
        ),
    ])

    return patient


def seed_second_patient(db, ubs, doctor):
    """A patient with sparse data and no clinical history besides one visit"""
    patient = Patient(
        fhir_id="patient-456",
        cpf="10987654321",
        active=True,
        gender="male",
        birth_date=date(1970, 11, 2),
        names=[HumanName(given="João Pedro", family="Santos")],
    )
    patient.credential = PatientCredential(username=patient.cpf, password_hash=hash_password("senha-joao"))
    db.add(patient)
    db.add(Encounter(
        status="finished",
        start=days_ago(10),
        patient=patient,
        practitioner=doctor,
        service_provider=ubs,
    ))
    return patient


def seed_database():
    """Insert demo data unless it is already there"""
    db = SessionLocal()
    try:
        if db.query(Patient).filter(Patient.cpf == "12345678910").first():
            print("ℹ️  Demo data already present, skipping")
            return

        ubs, hospital = seed_organizations(db)
        doctor, nurse = seed_practitioners(db)
        maria = seed_demo_patient(db, ubs, hospital, doctor, nurse)
        joao = seed_second_patient(db, ubs, doctor)
        db.commit()

        print("✅ Seeded demo data")
        print(f"   Login: CPF {maria.cpf} / password {DEMO_PASSWORD}")
        print(f"   Login: CPF {joao.cpf} / password senha-joao")
    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
