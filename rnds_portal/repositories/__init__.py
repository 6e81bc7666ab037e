from .patient import PatientRepository

__all__ = ["PatientRepository"]
