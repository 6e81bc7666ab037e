from .patient_history import PatientHistoryService, PatientNotFoundError

__all__ = ["PatientHistoryService", "PatientNotFoundError"]
