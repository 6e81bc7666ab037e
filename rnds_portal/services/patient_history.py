"""
Patient History Service

Builds the FHIR Bundles served by the portal, mimicking the RNDS RAC
(Registro de Atendimento Clínico) responses.

The full history is assembled in a fixed order:
1. Patient (always first, exactly one entry)
2. Encounters
3. Observations
4. Conditions
5. AllergyIntolerances
6. Procedures
7. MedicationStatements

Within each collection the repository's ordering (most recent first) is kept.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Sequence

from rnds_portal.fhir.bundler import FHIRBundler
from rnds_portal.fhir.mappers import (
    AllergyIntoleranceMapper,
    ConditionMapper,
    EncounterMapper,
    MedicationStatementMapper,
    ObservationMapper,
    PatientMapper,
    ProcedureMapper,
    external_id,
)
from rnds_portal.fhir.records import (
    AllergyIntoleranceRecord,
    ConditionRecord,
    EncounterRecord,
    MedicationStatementRecord,
    ObservationRecord,
    PatientHistory,
    PatientRecord,
    ProcedureRecord,
)

logger = logging.getLogger(__name__)


class PatientNotFoundError(Exception):
    """Raised when the requested patient aggregate does not exist."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Patient not found: {key}")


class HistoryRepository(Protocol):
    """Persistence operations the service depends on."""

    async def find_patient(self, patient_id: str) -> Optional[PatientRecord]: ...
    async def find_patient_by_cpf(self, cpf: str) -> Optional[PatientRecord]: ...
    async def find_encounters(self, patient_id: str) -> Sequence[EncounterRecord]: ...
    async def find_observations(
        self, patient_id: str, category: Optional[str] = None
    ) -> Sequence[ObservationRecord]: ...
    async def find_conditions(self, patient_id: str) -> Sequence[ConditionRecord]: ...
    async def find_allergies(self, patient_id: str) -> Sequence[AllergyIntoleranceRecord]: ...
    async def find_procedures(self, patient_id: str) -> Sequence[ProcedureRecord]: ...
    async def find_medications(self, patient_id: str) -> Sequence[MedicationStatementRecord]: ...


def add_entries(
    bundler: FHIRBundler,
    resource_type: str,
    records: Iterable[Any],
    mapper: Callable[[Any], Dict[str, Any]],
) -> None:
    """Map each record and append it to the bundle, keeping record order."""
    for record in records:
        bundler.add_entry(resource_type, external_id(record), mapper(record))


def _retrieve_outcome(future: "asyncio.Future") -> None:
    """Mark an abandoned future's failure as retrieved."""
    if not future.cancelled():
        future.exception()


class PatientHistoryService:
    """
    Assembles patient bundles from repository aggregates.

    Usage:
        service = PatientHistoryService(repository)
        bundle = await service.get_patient_history(patient_id)
    """

    def __init__(self, repository: HistoryRepository):
        self.repository = repository

    async def load_history(self, patient_id: str) -> PatientHistory:
        """
        Fetch the patient and the six clinical collections concurrently.

        A missing patient aborts the pending collection reads; a failing
        collection read fails the whole aggregation.

        Raises:
            PatientNotFoundError: If the patient does not exist
        """
        repo = self.repository
        patient_lookup = asyncio.ensure_future(repo.find_patient(patient_id))
        collections = asyncio.gather(
            repo.find_encounters(patient_id),
            repo.find_observations(patient_id),
            repo.find_conditions(patient_id),
            repo.find_allergies(patient_id),
            repo.find_procedures(patient_id),
            repo.find_medications(patient_id),
        )

        try:
            patient = await patient_lookup
            if patient is None:
                logger.warning("History requested for unknown patient %s", patient_id)
                raise PatientNotFoundError(patient_id)
            encounters, observations, conditions, allergies, procedures, medications = await collections
        except BaseException:
            collections.cancel()
            collections.add_done_callback(_retrieve_outcome)
            raise

        return PatientHistory(
            patient=patient,
            encounters=list(encounters),
            observations=list(observations),
            conditions=list(conditions),
            allergies=list(allergies),
            procedures=list(procedures),
            medications=list(medications),
        )

    @staticmethod
    def attach_patient(history: PatientHistory) -> PatientHistory:
        """
        Point every clinical record at the history's patient aggregate.

        Patient references then use the same external id as the Patient
        entry, whether or not the repository loaded the relation.
        """
        patient = history.patient

        def attach(records):
            return [record.model_copy(update={"patient": patient}) for record in records]

        return PatientHistory(
            patient=patient,
            encounters=attach(history.encounters),
            observations=attach(history.observations),
            conditions=attach(history.conditions),
            allergies=attach(history.allergies),
            procedures=attach(history.procedures),
            medications=attach(history.medications),
        )

    @classmethod
    def build_history_bundle(cls, history: PatientHistory) -> Dict[str, Any]:
        """Assemble a collection bundle from an already loaded history."""
        history = cls.attach_patient(history)
        bundler = FHIRBundler("collection")

        bundler.add_entry("Patient", external_id(history.patient), PatientMapper.map(history.patient))
        add_entries(bundler, "Encounter", history.encounters, EncounterMapper.map)
        add_entries(bundler, "Observation", history.observations, ObservationMapper.map)
        add_entries(bundler, "Condition", history.conditions, ConditionMapper.map)
        add_entries(bundler, "AllergyIntolerance", history.allergies, AllergyIntoleranceMapper.map)
        add_entries(bundler, "Procedure", history.procedures, ProcedureMapper.map)
        add_entries(bundler, "MedicationStatement", history.medications, MedicationStatementMapper.map)

        return bundler.finalize()

    async def get_patient_history(self, patient_id: str) -> Dict[str, Any]:
        """
        Full clinical history of a patient as a collection Bundle.

        Args:
            patient_id: Internal patient id

        Returns:
            Finalized Bundle dict with 1 + sum(collection sizes) entries

        Raises:
            PatientNotFoundError: If the patient does not exist
        """
        history = await self.load_history(patient_id)
        bundle = self.build_history_bundle(history)
        logger.info("Assembled history bundle for patient %s with %d entries", patient_id, bundle["total"])
        return bundle

    @classmethod
    def build_summary(cls, history: PatientHistory) -> Dict[str, Any]:
        """Group mapped resources by kind instead of wrapping them in a Bundle."""
        history = cls.attach_patient(history)
        return {
            "patient": PatientMapper.map(history.patient),
            "encounters": [EncounterMapper.map(r) for r in history.encounters],
            "observations": [ObservationMapper.map(r) for r in history.observations],
            "allergies": [AllergyIntoleranceMapper.map(r) for r in history.allergies],
            "conditions": [ConditionMapper.map(r) for r in history.conditions],
            "procedures": [ProcedureMapper.map(r) for r in history.procedures],
            "medications": [MedicationStatementMapper.map(r) for r in history.medications],
        }

    async def get_patient_summary(self, patient_id: str) -> Dict[str, Any]:
        """
        Patient summary grouped by resource kind, as consumed by the portal UI.

        Raises:
            PatientNotFoundError: If the patient does not exist
        """
        history = await self.load_history(patient_id)
        return self.build_summary(history)

    async def get_patient_by_cpf(self, cpf: str) -> Dict[str, Any]:
        """Searchset Bundle with the single patient owning the CPF."""
        patient = await self.repository.find_patient_by_cpf(cpf)
        if patient is None:
            raise PatientNotFoundError(cpf)

        bundler = FHIRBundler("searchset")
        bundler.add_entry("Patient", external_id(patient), PatientMapper.map(patient))
        return bundler.finalize()

    # ------------------------------------------------------------------
    # Per-resource searchsets
    # ------------------------------------------------------------------

    @staticmethod
    def _searchset(resource_type: str, records: Iterable[Any], mapper) -> Dict[str, Any]:
        bundler = FHIRBundler("searchset")
        add_entries(bundler, resource_type, records, mapper)
        return bundler.finalize()

    async def get_encounters(self, patient_id: str) -> Dict[str, Any]:
        records = await self.repository.find_encounters(patient_id)
        return self._searchset("Encounter", records, EncounterMapper.map)

    async def get_observations(self, patient_id: str, category: Optional[str] = None) -> Dict[str, Any]:
        records = await self.repository.find_observations(patient_id, category)
        return self._searchset("Observation", records, ObservationMapper.map)

    async def get_conditions(self, patient_id: str) -> Dict[str, Any]:
        records = await self.repository.find_conditions(patient_id)
        return self._searchset("Condition", records, ConditionMapper.map)

    async def get_allergies(self, patient_id: str) -> Dict[str, Any]:
        records = await self.repository.find_allergies(patient_id)
        return self._searchset("AllergyIntolerance", records, AllergyIntoleranceMapper.map)

    async def get_procedures(self, patient_id: str) -> Dict[str, Any]:
        records = await self.repository.find_procedures(patient_id)
        return self._searchset("Procedure", records, ProcedureMapper.map)

    async def get_medications(self, patient_id: str) -> Dict[str, Any]:
        records = await self.repository.find_medications(patient_id)
        return self._searchset("MedicationStatement", records, MedicationStatementMapper.map)
