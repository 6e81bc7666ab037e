import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from . import models, schemas, database
from .auth import (
    AuthenticationError,
    Authenticator,
    AuthorizationError,
    Caller,
    TokenService,
    ensure_own_record,
    get_authenticator,
    get_current_caller,
    get_token_service,
)
from .config import settings
from .logging_config import setup_logging
from .repositories import PatientRepository
from .services import PatientHistoryService, PatientNotFoundError

logger = logging.getLogger(__name__)

Bundle = Dict[str, Any]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and create database tables on startup"""
    setup_logging(settings.log_level)
    models.Base.metadata.create_all(bind=database.engine)
    logger.info("Database tables ready")
    yield

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Patient portal backend serving RNDS (BR Core FHIR R4) clinical history bundles",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_repository(
    session_factory: sessionmaker = Depends(database.get_session_factory),
) -> PatientRepository:
    """Repository bounded by the configured collection limits"""
    return PatientRepository(
        session_factory,
        encounter_limit=settings.encounter_limit,
        observation_limit=settings.observation_limit,
        condition_limit=settings.condition_limit,
        allergy_limit=settings.allergy_limit,
        procedure_limit=settings.procedure_limit,
        medication_limit=settings.medication_limit,
    )


def get_history_service(repository: PatientRepository = Depends(get_repository)) -> PatientHistoryService:
    return PatientHistoryService(repository)


def not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")

# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """
    Health check endpoint - returns {"status": "ok"}
    """
    return {"status": "ok"}

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/auth/login", response_model=schemas.LoginResponse)
def login(
    request: schemas.LoginRequest,
    db: Session = Depends(database.get_db),
    authenticator: Authenticator = Depends(get_authenticator),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Log a patient in with CPF and password

    Returns:
    - accessToken: Bearer JWT valid for the configured lifetime
    - user: id, fhirId, name and cpf of the patient
    - 401 on wrong credentials, 403 if the patient is inactive
    """
    try:
        user = authenticator.authenticate(db, request.cpf, request.password)
    except AuthenticationError as e:
        logger.warning("Failed login attempt")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except AuthorizationError as e:
        logger.warning("Login refused for inactive patient")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    logger.info("Patient %s logged in", user.id)
    return {
        "accessToken": tokens.issue(user),
        "user": {"id": user.id, "fhirId": user.fhir_id, "name": user.name, "cpf": user.cpf},
    }


@app.get("/auth/me", response_model=schemas.MeResponse)
def me(caller: Caller = Depends(get_current_caller)):
    """Claims of the current access token"""
    return {"user": {"sub": caller.sub, "fhirId": caller.fhir_id, "cpf": caller.cpf}}

# ============================================================================
# FHIR ENDPOINTS
# ============================================================================

@app.get("/fhir/patient/{cpf}")
async def get_patient_by_cpf(
    cpf: str = Path(..., pattern=r"^\d{11}$"),
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    """
    Search the patient by CPF

    Returns a searchset Bundle with the single matching Patient.
    Callers may only search their own CPF.
    """
    if caller.cpf != cpf:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: you can only access your own data",
        )
    try:
        return await service.get_patient_by_cpf(cpf)
    except PatientNotFoundError:
        raise not_found()


@app.get("/fhir/patient/{patient_id}/history")
async def get_patient_history(
    patient_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    """
    Full clinical history of the patient (RAC)

    Returns a collection Bundle ordered Patient, Encounter, Observation,
    Condition, AllergyIntolerance, Procedure, MedicationStatement.
    """
    ensure_own_record(caller, patient_id)
    try:
        return await service.get_patient_history(patient_id)
    except PatientNotFoundError:
        raise not_found()


@app.get("/patients/{patient_id}/summary")
async def get_patient_summary(
    patient_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Dict[str, Any]:
    """
    Patient summary for the portal dashboard

    Returns the mapped resources grouped by kind:
    patient, encounters, observations, allergies, conditions, procedures, medications.
    """
    ensure_own_record(caller, patient_id)
    try:
        return await service.get_patient_summary(patient_id)
    except PatientNotFoundError:
        raise not_found()


@app.get("/fhir/encounters/{patient_id}")
async def get_encounters(
    patient_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    """Encounters of the patient, most recent first"""
    ensure_own_record(caller, patient_id)
    return await service.get_encounters(patient_id)


@app.get("/fhir/observations/{patient_id}")
async def get_observations(
    patient_id: str,
    category: Optional[str] = Query(None, description="Observation category code, e.g. vital-signs"),
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    """Observations of the patient, optionally filtered by category"""
    ensure_own_record(caller, patient_id)
    return await service.get_observations(patient_id, category)


@app.get("/fhir/conditions/{patient_id}")
async def get_conditions(
    patient_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    ensure_own_record(caller, patient_id)
    return await service.get_conditions(patient_id)


@app.get("/fhir/allergies/{patient_id}")
async def get_allergies(
    patient_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    ensure_own_record(caller, patient_id)
    return await service.get_allergies(patient_id)


@app.get("/fhir/procedures/{patient_id}")
async def get_procedures(
    patient_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    ensure_own_record(caller, patient_id)
    return await service.get_procedures(patient_id)


@app.get("/fhir/medications/{patient_id}")
async def get_medications(
    patient_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PatientHistoryService = Depends(get_history_service),
) -> Bundle:
    ensure_own_record(caller, patient_id)
    return await service.get_medications(patient_id)
