"""Patient repository.

Loads patient aggregates and their clinical collections from the relational
store and returns them as immutable aggregate records for the FHIR mappers.

Every read opens its own session and runs in a worker thread, so the history
service can issue the reads concurrently.
"""
import asyncio
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from rnds_portal import models
from rnds_portal.fhir.constants import BR_IDENTIFIER_SYSTEMS
from rnds_portal.fhir.records import (
    AllergyIntoleranceRecord,
    ConditionRecord,
    EncounterRecord,
    MedicationStatementRecord,
    ObservationRecord,
    PatientRecord,
    ProcedureRecord,
)

T = TypeVar("T")

PATIENT_RELATIONS = (
    selectinload(models.Patient.identifiers),
    selectinload(models.Patient.names),
    selectinload(models.Patient.telecoms),
    selectinload(models.Patient.addresses),
)


def _patient_ref(relationship):
    """Load the owning patient with the names used for reference display."""
    return selectinload(relationship).selectinload(models.Patient.names)


def _practitioner_ref(relationship):
    return selectinload(relationship).selectinload(models.Practitioner.names)


class PatientRepository:
    """Read-only access to patient aggregates.

    Collection bounds are supplied by the caller's configuration; ``None``
    means unbounded. Collections come back most-recent-first.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        encounter_limit: Optional[int] = 10,
        observation_limit: Optional[int] = 50,
        condition_limit: Optional[int] = None,
        allergy_limit: Optional[int] = None,
        procedure_limit: Optional[int] = 20,
        medication_limit: Optional[int] = None,
    ):
        """Initialize repository with a session factory.

        Args:
            session_factory: SQLAlchemy sessionmaker.
        """
        self.session_factory = session_factory
        self.encounter_limit = encounter_limit
        self.observation_limit = observation_limit
        self.condition_limit = condition_limit
        self.allergy_limit = allergy_limit
        self.procedure_limit = procedure_limit
        self.medication_limit = medication_limit

    async def _run(self, query: Callable[[Session], T]) -> T:
        def work() -> T:
            with self.session_factory() as db:
                return query(db)

        return await asyncio.to_thread(work)

    # ------------------------------------------------------------------
    # Patient lookups
    # ------------------------------------------------------------------

    async def find_patient(self, patient_id: str) -> Optional[PatientRecord]:
        """Find a patient by internal id."""
        def query(db: Session) -> Optional[PatientRecord]:
            stmt = select(models.Patient).options(*PATIENT_RELATIONS).where(models.Patient.id == patient_id)
            patient = db.execute(stmt).scalar_one_or_none()
            return PatientRecord.model_validate(patient) if patient else None

        return await self._run(query)

    async def find_patient_by_cpf(self, cpf: str) -> Optional[PatientRecord]:
        """Find a patient by the CPF column or by a CPF identifier row."""
        def query(db: Session) -> Optional[PatientRecord]:
            cpf_identifier = select(models.Identifier.patient_id).where(
                models.Identifier.system == BR_IDENTIFIER_SYSTEMS["CPF"],
                models.Identifier.value == cpf,
            )
            stmt = (
                select(models.Patient)
                .options(*PATIENT_RELATIONS)
                .where(or_(models.Patient.cpf == cpf, models.Patient.id.in_(cpf_identifier)))
                .limit(1)
            )
            patient = db.execute(stmt).scalar_one_or_none()
            return PatientRecord.model_validate(patient) if patient else None

        return await self._run(query)

    # ------------------------------------------------------------------
    # Clinical collections
    # ------------------------------------------------------------------

    async def find_encounters(self, patient_id: str) -> List[EncounterRecord]:
        def query(db: Session) -> List[EncounterRecord]:
            stmt = (
                select(models.Encounter)
                .options(
                    selectinload(models.Encounter.identifiers),
                    _patient_ref(models.Encounter.patient),
                    _practitioner_ref(models.Encounter.practitioner),
                    selectinload(models.Encounter.service_provider),
                )
                .where(models.Encounter.patient_id == patient_id)
                .order_by(models.Encounter.start.desc())
                .limit(self.encounter_limit)
            )
            return [EncounterRecord.model_validate(row) for row in db.execute(stmt).scalars()]

        return await self._run(query)

    async def find_observations(self, patient_id: str, category: Optional[str] = None) -> List[ObservationRecord]:
        def query(db: Session) -> List[ObservationRecord]:
            stmt = (
                select(models.Observation)
                .options(
                    selectinload(models.Observation.components),
                    _patient_ref(models.Observation.patient),
                    selectinload(models.Observation.encounter),
                    _practitioner_ref(models.Observation.performer),
                )
                .where(models.Observation.patient_id == patient_id)
                .order_by(models.Observation.effective_date_time.desc())
                .limit(self.observation_limit)
            )
            if category:
                stmt = stmt.where(models.Observation.category_code == category)
            return [ObservationRecord.model_validate(row) for row in db.execute(stmt).scalars()]

        return await self._run(query)

    async def find_conditions(self, patient_id: str) -> List[ConditionRecord]:
        def query(db: Session) -> List[ConditionRecord]:
            stmt = (
                select(models.Condition)
                .options(_patient_ref(models.Condition.patient), _practitioner_ref(models.Condition.recorder))
                .where(models.Condition.patient_id == patient_id)
                .order_by(models.Condition.recorded_date.desc())
                .limit(self.condition_limit)
            )
            return [ConditionRecord.model_validate(row) for row in db.execute(stmt).scalars()]

        return await self._run(query)

    async def find_allergies(self, patient_id: str) -> List[AllergyIntoleranceRecord]:
        def query(db: Session) -> List[AllergyIntoleranceRecord]:
            stmt = (
                select(models.AllergyIntolerance)
                .options(
                    _patient_ref(models.AllergyIntolerance.patient),
                    _practitioner_ref(models.AllergyIntolerance.recorder),
                )
                .where(models.AllergyIntolerance.patient_id == patient_id)
                .order_by(models.AllergyIntolerance.recorded_date.desc())
                .limit(self.allergy_limit)
            )
            return [AllergyIntoleranceRecord.model_validate(row) for row in db.execute(stmt).scalars()]

        return await self._run(query)

    async def find_procedures(self, patient_id: str) -> List[ProcedureRecord]:
        def query(db: Session) -> List[ProcedureRecord]:
            stmt = (
                select(models.Procedure)
                .options(
                    _patient_ref(models.Procedure.patient),
                    selectinload(models.Procedure.encounter),
                    _practitioner_ref(models.Procedure.performer),
                )
                .where(models.Procedure.patient_id == patient_id)
                .order_by(models.Procedure.performed_start.desc())
                .limit(self.procedure_limit)
            )
            return [ProcedureRecord.model_validate(row) for row in db.execute(stmt).scalars()]

        return await self._run(query)

    async def find_medications(self, patient_id: str) -> List[MedicationStatementRecord]:
        def query(db: Session) -> List[MedicationStatementRecord]:
            stmt = (
                select(models.MedicationStatement)
                .options(
                    _patient_ref(models.MedicationStatement.patient),
                    _practitioner_ref(models.MedicationStatement.recorder),
                )
                .where(models.MedicationStatement.patient_id == patient_id)
                .order_by(models.MedicationStatement.effective_start.desc())
                .limit(self.medication_limit)
            )
            return [MedicationStatementRecord.model_validate(row) for row in db.execute(stmt).scalars()]

        return await self._run(query)
