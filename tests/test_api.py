"""
API Endpoint Tests

Exercises auth and the FHIR routes end to end over a SQLite file database.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rnds_portal.auth import (
    DEMO_PASSWORD,
    DEMO_USER,
    AuthenticatedUser,
    DemoAuthenticator,
    get_authenticator,
    get_token_service,
    hash_password,
)
from rnds_portal.database import Base, get_db, get_session_factory
from rnds_portal.main import app
from rnds_portal.models import (
    Condition,
    Encounter,
    HumanName,
    Observation,
    ObservationComponent,
    Organization,
    Patient,
    PatientCredential,
    Practitioner,
)

# Test database (SQLite in /tmp for container compatibility)
SQLALCHEMY_DATABASE_URL = "sqlite:////tmp/test_rnds_api.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


def override_get_session_factory():
    return TestingSessionLocal


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_session_factory] = override_get_session_factory
client = TestClient(app)

SAMPLE_CPF = "12345678910"
SAMPLE_PASSWORD = "senha-segura"
OTHER_CPF = "10987654321"
INACTIVE_CPF = "55566677788"

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def seed(db):
    organization = Organization(fhir_id="org-ubs", cnes="2077485", name="UBS Vila Mariana")
    doctor = Practitioner(fhir_id="pract-carlos", names=[HumanName(given="Carlos", family="Souza")])

    maria = Patient(
        id="patient-maria",
        fhir_id="patient-123",
        cpf=SAMPLE_CPF,
        active=True,
        gender="female",
        birth_date=date(1985, 3, 14),
        names=[HumanName(text="Maria Oliveira", family="Oliveira", given="Maria")],
    )
    maria.credential = PatientCredential(username=SAMPLE_CPF, password_hash=hash_password(SAMPLE_PASSWORD))

    joao = Patient(id="patient-joao", fhir_id="patient-456", cpf=OTHER_CPF, active=True,
                   names=[HumanName(text="João Santos")])
    joao.credential = PatientCredential(username=OTHER_CPF, password_hash=hash_password("outra-senha"))

    inactive = Patient(id="patient-inactive", cpf=INACTIVE_CPF, active=False)
    inactive.credential = PatientCredential(username=INACTIVE_CPF, password_hash=hash_password("inativo"))

    db.add_all([organization, doctor, maria, joao, inactive])
    db.flush()

    older = Encounter(fhir_id="enc-1", status="finished", start=BASE_TIME - timedelta(days=30),
                      patient=maria, practitioner=doctor, service_provider=organization)
    newer = Encounter(fhir_id="enc-2", status="finished", start=BASE_TIME,
                      patient=maria, practitioner=doctor, service_provider=organization)
    db.add_all([older, newer])

    db.add_all([
        Observation(
            fhir_id="obs-bp", status="final", category_code="vital-signs", code="85354-9",
            code_display="Blood pressure panel", effective_date_time=BASE_TIME,
            patient=maria, encounter=newer,
            components=[
                ObservationComponent(code="8480-6", value_quantity=Decimal("145"), value_quantity_unit="mm[Hg]"),
                ObservationComponent(code="8462-4", value_quantity=Decimal("92"), value_quantity_unit="mm[Hg]"),
            ],
        ),
        Observation(
            fhir_id="obs-glucose", status="final", category_code="laboratory", code="2339-0",
            effective_date_time=BASE_TIME - timedelta(days=1),
            value_quantity=Decimal("98.5"), value_quantity_unit="mg/dL", patient=maria,
        ),
        Condition(fhir_id="cond-1", clinical_status="active", code="I10", code_display="Hipertensão",
                  recorded_date=BASE_TIME, patient=maria, recorder=doctor),
        Encounter(fhir_id="enc-joao", status="finished", start=BASE_TIME, patient=joao),
    ])
    db.commit()


@pytest.fixture(scope="module", autouse=True)
def database():
    """Recreate tables and load one data set for the module"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    seed(db)
    db.close()
    yield
    Base.metadata.drop_all(bind=engine)


def login(cpf=SAMPLE_CPF, password=SAMPLE_PASSWORD):
    return client.post("/auth/login", json={"cpf": cpf, "password": password})


def auth_headers(cpf=SAMPLE_CPF, password=SAMPLE_PASSWORD):
    token = login(cpf, password).json()["accessToken"]
    return {"Authorization": f"Bearer {token}"}


def token_for(user: AuthenticatedUser):
    return {"Authorization": f"Bearer {get_token_service().issue(user)}"}


# ============================================================================
# HEALTH CHECK
# ============================================================================

def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

# ============================================================================
# AUTH
# ============================================================================

class TestAuth:

    def test_login(self):
        response = login()

        assert response.status_code == 200
        data = response.json()
        assert data["accessToken"]
        assert data["user"] == {
            "id": "patient-maria", "fhirId": "patient-123", "name": "Maria Oliveira", "cpf": SAMPLE_CPF
        }

    def test_login_wrong_password(self):
        assert login(password="errada").status_code == 401

    def test_login_unknown_cpf(self):
        assert login(cpf="00000000000").status_code == 401

    def test_login_inactive_patient(self):
        assert login(cpf=INACTIVE_CPF, password="inativo").status_code == 403

    def test_login_validation(self):
        assert client.post("/auth/login", json={"cpf": "123", "password": "x"}).status_code == 422
        assert client.post("/auth/login", json={"cpf": SAMPLE_CPF, "password": ""}).status_code == 422

    def test_me(self):
        response = client.get("/auth/me", headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == {"user": {"sub": "patient-maria", "fhirId": "patient-123", "cpf": SAMPLE_CPF}}

    def test_me_without_token(self):
        assert client.get("/auth/me").status_code == 401

    def test_me_with_invalid_token(self):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_demo_login(self):
        app.dependency_overrides[get_authenticator] = lambda: DemoAuthenticator(DEMO_USER, DEMO_PASSWORD)
        try:
            response = login(DEMO_USER.cpf, DEMO_PASSWORD)
            rejected = login(DEMO_USER.cpf, "wrong")
        finally:
            del app.dependency_overrides[get_authenticator]

        assert response.status_code == 200
        assert response.json()["user"]["id"] == "patient-mock-123"
        assert rejected.status_code == 401

# ============================================================================
# FHIR ENDPOINTS
# ============================================================================

class TestPatientHistoryEndpoint:

    def test_history_bundle(self):
        response = client.get("/fhir/patient/patient-maria/history", headers=auth_headers())

        assert response.status_code == 200
        bundle = response.json()
        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "collection"
        assert bundle["total"] == len(bundle["entry"]) == 6
        assert [entry["fullUrl"] for entry in bundle["entry"]] == [
            "Patient/patient-123",
            "Encounter/enc-2",
            "Encounter/enc-1",
            "Observation/obs-bp",
            "Observation/obs-glucose",
            "Condition/cond-1",
        ]

    def test_history_references(self):
        bundle = client.get("/fhir/patient/patient-maria/history", headers=auth_headers()).json()
        encounter = bundle["entry"][1]["resource"]
        observation = bundle["entry"][3]["resource"]

        assert encounter["subject"] == {"reference": "Patient/patient-123", "display": "Maria Oliveira"}
        assert encounter["serviceProvider"] == {"reference": "Organization/org-ubs", "display": "UBS Vila Mariana"}
        assert encounter["participant"][0]["individual"]["display"] == "Carlos Souza"
        assert observation["encounter"]["reference"] == "Encounter/enc-2"
        assert [c["valueQuantity"]["value"] for c in observation["component"]] == [145, 92]
        assert observation["effectiveDateTime"] == "2024-05-01T09:00:00.000Z"

    def test_history_of_other_patient_forbidden(self):
        response = client.get("/fhir/patient/patient-joao/history", headers=auth_headers())
        assert response.status_code == 403

    def test_history_requires_token(self):
        assert client.get("/fhir/patient/patient-maria/history").status_code == 401

    def test_history_not_found(self):
        ghost = AuthenticatedUser(id="ghost", fhir_id=None, name="Ghost", cpf="99999999999")
        response = client.get("/fhir/patient/ghost/history", headers=token_for(ghost))
        assert response.status_code == 404


class TestPatientSummaryEndpoint:

    def test_summary_grouped_by_kind(self):
        response = client.get("/patients/patient-maria/summary", headers=auth_headers())

        assert response.status_code == 200
        summary = response.json()
        assert summary["patient"]["id"] == "patient-123"
        assert [e["id"] for e in summary["encounters"]] == ["enc-2", "enc-1"]
        assert [o["id"] for o in summary["observations"]] == ["obs-bp", "obs-glucose"]
        assert [c["id"] for c in summary["conditions"]] == ["cond-1"]
        assert summary["allergies"] == summary["procedures"] == summary["medications"] == []

    def test_summary_of_other_patient_forbidden(self):
        response = client.get("/patients/patient-joao/summary", headers=auth_headers())
        assert response.status_code == 403

    def test_summary_not_found(self):
        ghost = AuthenticatedUser(id="ghost", fhir_id=None, name="Ghost", cpf="99999999999")
        response = client.get("/patients/ghost/summary", headers=token_for(ghost))
        assert response.status_code == 404


class TestPatientByCpfEndpoint:

    def test_own_cpf(self):
        response = client.get(f"/fhir/patient/{SAMPLE_CPF}", headers=auth_headers())

        assert response.status_code == 200
        bundle = response.json()
        assert bundle["type"] == "searchset"
        assert bundle["total"] == 1
        assert bundle["entry"][0]["resource"]["id"] == "patient-123"

    def test_other_cpf_forbidden(self):
        response = client.get(f"/fhir/patient/{OTHER_CPF}", headers=auth_headers())
        assert response.status_code == 403

    def test_unknown_cpf(self):
        ghost = AuthenticatedUser(id="ghost", fhir_id=None, name="Ghost", cpf="99999999999")
        response = client.get("/fhir/patient/99999999999", headers=token_for(ghost))
        assert response.status_code == 404


class TestResourceEndpoints:

    def test_encounters(self):
        bundle = client.get("/fhir/encounters/patient-maria", headers=auth_headers()).json()

        assert bundle["type"] == "searchset"
        assert [entry["fullUrl"] for entry in bundle["entry"]] == ["Encounter/enc-2", "Encounter/enc-1"]

    def test_observations_by_category(self):
        response = client.get(
            "/fhir/observations/patient-maria", params={"category": "laboratory"}, headers=auth_headers()
        )

        bundle = response.json()
        assert bundle["total"] == 1
        assert bundle["entry"][0]["resource"]["valueQuantity"]["value"] == 98.5

    def test_conditions(self):
        bundle = client.get("/fhir/conditions/patient-maria", headers=auth_headers()).json()
        assert bundle["entry"][0]["resource"]["code"]["coding"][0]["code"] == "I10"

    @pytest.mark.parametrize("resource", ["allergies", "procedures", "medications"])
    def test_empty_collections(self, resource):
        response = client.get(f"/fhir/{resource}/patient-maria", headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["total"] == 0
        assert response.json()["entry"] == []

    def test_other_patient_forbidden(self):
        response = client.get("/fhir/encounters/patient-joao", headers=auth_headers())
        assert response.status_code == 403
