from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from .database import Base


def utcnow():
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


# ============================================================================
# Shared relation rows (owned by exactly one patient/practitioner/organization/encounter)
# ============================================================================

class Identifier(Base):
    __tablename__ = "identifiers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    use = Column(String(20))
    system = Column(String(255))
    value = Column(String(255), nullable=False)
    type_code = Column(String(50))
    type_display = Column(String(255))
    resource_type = Column(String(50))
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), index=True)
    practitioner_id = Column(String(36), ForeignKey("practitioners.id", ondelete="CASCADE"), index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    encounter_id = Column(String(36), ForeignKey("encounters.id", ondelete="CASCADE"), index=True)


class HumanName(Base):
    __tablename__ = "human_names"

    id = Column(Integer, primary_key=True, autoincrement=True)
    use = Column(String(20))
    text = Column(String(255))
    family = Column(String(255))
    given = Column(String(255))
    period_start = Column(DateTime(timezone=True))
    period_end = Column(DateTime(timezone=True))
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), index=True)
    practitioner_id = Column(String(36), ForeignKey("practitioners.id", ondelete="CASCADE"), index=True)


class ContactPoint(Base):
    __tablename__ = "contact_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    system = Column(String(20))
    value = Column(String(255))
    use = Column(String(20))
    rank = Column(Integer)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), index=True)
    practitioner_id = Column(String(36), ForeignKey("practitioners.id", ondelete="CASCADE"), index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), index=True)


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    use = Column(String(20))
    type = Column(String(20))
    text = Column(String(500))
    line1 = Column(String(255))
    line2 = Column(String(255))
    district = Column(String(100))
    city = Column(String(100))
    state = Column(String(2))
    postal_code = Column(String(20))
    country = Column(String(2))
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), index=True)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), index=True)


# ============================================================================
# Administrative entities
# ============================================================================

class Patient(Base):
    """Citizen registered in the RNDS"""
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    cpf = Column(String(11), unique=True, index=True)
    cns = Column(String(15), unique=True)
    active = Column(Boolean, default=True)
    gender = Column(String(10))
    birth_date = Column(Date)
    marital_status = Column(String(5))
    deceased = Column(Boolean, default=False)
    language = Column(String(10))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    identifiers = relationship("Identifier", order_by="Identifier.id", cascade="all, delete-orphan",
                               primaryjoin="Patient.id == Identifier.patient_id")
    names = relationship("HumanName", order_by="HumanName.id", cascade="all, delete-orphan",
                         primaryjoin="Patient.id == HumanName.patient_id")
    telecoms = relationship("ContactPoint", order_by="ContactPoint.id", cascade="all, delete-orphan",
                            primaryjoin="Patient.id == ContactPoint.patient_id")
    addresses = relationship("Address", order_by="Address.id", cascade="all, delete-orphan",
                             primaryjoin="Patient.id == Address.patient_id")
    credential = relationship("PatientCredential", back_populates="patient", uselist=False)


class Practitioner(Base):
    """Health professional"""
    __tablename__ = "practitioners"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    cpf = Column(String(11))
    cns = Column(String(15))
    active = Column(Boolean, default=True)
    gender = Column(String(10))
    birth_date = Column(Date)
    qualification_code = Column(String(20))
    qualification_text = Column(String(255))
    council_type = Column(String(10))  # CRM, COREN, ...
    council_number = Column(String(20))
    council_uf = Column(String(2))

    identifiers = relationship("Identifier", order_by="Identifier.id", cascade="all, delete-orphan",
                               primaryjoin="Practitioner.id == Identifier.practitioner_id")
    names = relationship("HumanName", order_by="HumanName.id", cascade="all, delete-orphan",
                         primaryjoin="Practitioner.id == HumanName.practitioner_id")
    telecoms = relationship("ContactPoint", order_by="ContactPoint.id", cascade="all, delete-orphan",
                            primaryjoin="Practitioner.id == ContactPoint.practitioner_id")


class Organization(Base):
    """Health facility registered in CNES"""
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    cnes = Column(String(7), unique=True)
    active = Column(Boolean, default=True)
    name = Column(String(255), nullable=False)
    alias = Column(String(100))
    type_code = Column(String(20))
    type_display = Column(String(255))

    identifiers = relationship("Identifier", order_by="Identifier.id", cascade="all, delete-orphan",
                               primaryjoin="Organization.id == Identifier.organization_id")
    telecoms = relationship("ContactPoint", order_by="ContactPoint.id", cascade="all, delete-orphan",
                            primaryjoin="Organization.id == ContactPoint.organization_id")
    addresses = relationship("Address", order_by="Address.id", cascade="all, delete-orphan",
                             primaryjoin="Organization.id == Address.organization_id")


class PatientCredential(Base):
    """Portal login (username is the CPF)"""
    __tablename__ = "patient_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(11), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), unique=True, nullable=False)

    patient = relationship("Patient", back_populates="credential")


# ============================================================================
# Clinical entities
# ============================================================================

class Encounter(Base):
    __tablename__ = "encounters"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    status = Column(String(20), nullable=False)  # planned, in-progress, finished, cancelled...
    class_code = Column(String(10))
    class_display = Column(String(100))
    type_code = Column(String(50))
    type_display = Column(String(255))
    reason_code = Column(String(50))
    reason_display = Column(String(255))
    start = Column(DateTime(timezone=True))
    end = Column(DateTime(timezone=True))
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    practitioner_id = Column(String(36), ForeignKey("practitioners.id"))
    service_provider_id = Column(String(36), ForeignKey("organizations.id"))

    identifiers = relationship("Identifier", order_by="Identifier.id", cascade="all, delete-orphan",
                               primaryjoin="Encounter.id == Identifier.encounter_id")
    patient = relationship("Patient")
    practitioner = relationship("Practitioner")
    service_provider = relationship("Organization")


class Observation(Base):
    __tablename__ = "observations"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    status = Column(String(20), nullable=False)
    category_code = Column(String(50), index=True)
    category_display = Column(String(100))
    code_system = Column(String(255))
    code = Column(String(50))
    code_display = Column(String(255))
    effective_date_time = Column(DateTime(timezone=True))
    issued = Column(DateTime(timezone=True))
    value_quantity = Column(Numeric(18, 6))
    value_quantity_unit = Column(String(50))
    value_string = Column(Text)
    value_code_system = Column(String(255))
    value_code = Column(String(50))
    value_code_display = Column(String(255))
    interpretation_code = Column(String(10))
    interpretation_text = Column(String(255))
    note = Column(Text)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    encounter_id = Column(String(36), ForeignKey("encounters.id"))
    performer_id = Column(String(36), ForeignKey("practitioners.id"))

    components = relationship("ObservationComponent", order_by="ObservationComponent.id",
                              cascade="all, delete-orphan")
    patient = relationship("Patient")
    encounter = relationship("Encounter")
    performer = relationship("Practitioner")


class ObservationComponent(Base):
    __tablename__ = "observation_components"

    id = Column(Integer, primary_key=True, autoincrement=True)
    observation_id = Column(String(36), ForeignKey("observations.id", ondelete="CASCADE"), nullable=False, index=True)
    code_system = Column(String(255))
    code = Column(String(50))
    code_display = Column(String(255))
    value_quantity = Column(Numeric(18, 6))
    value_quantity_unit = Column(String(50))
    value_string = Column(Text)
    value_code_system = Column(String(255))
    value_code = Column(String(50))
    value_code_display = Column(String(255))


class Condition(Base):
    __tablename__ = "conditions"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    clinical_status = Column(String(20))
    verification_status = Column(String(20))
    category_code = Column(String(50))
    severity = Column(String(20))
    code_system = Column(String(255))
    code = Column(String(20))
    code_display = Column(String(255))
    onset_date_time = Column(DateTime(timezone=True))
    abatement_date_time = Column(DateTime(timezone=True))
    recorded_date = Column(DateTime(timezone=True))
    note = Column(Text)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    recorder_id = Column(String(36), ForeignKey("practitioners.id"))

    patient = relationship("Patient")
    recorder = relationship("Practitioner")


class AllergyIntolerance(Base):
    __tablename__ = "allergy_intolerances"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    clinical_status_code = Column(String(20))
    clinical_status_text = Column(String(100))
    verification_status = Column(String(20))
    type = Column(String(20))  # allergy, intolerance
    category = Column(String(20))  # food, medication, environment, biologic
    criticality = Column(String(20))  # low, high, unable-to-assess
    code_system = Column(String(255))
    code = Column(String(50))
    code_display = Column(String(255))
    recorded_date = Column(DateTime(timezone=True))
    last_occurrence = Column(DateTime(timezone=True))
    note = Column(Text)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    recorder_id = Column(String(36), ForeignKey("practitioners.id"))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    patient = relationship("Patient")
    recorder = relationship("Practitioner")


class Procedure(Base):
    __tablename__ = "procedures"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    status = Column(String(20))
    category_code = Column(String(50))
    code_system = Column(String(255))
    code = Column(String(20))
    code_display = Column(String(255))
    performed_start = Column(DateTime(timezone=True))
    performed_end = Column(DateTime(timezone=True))
    note = Column(Text)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    encounter_id = Column(String(36), ForeignKey("encounters.id"))
    performer_id = Column(String(36), ForeignKey("practitioners.id"))

    patient = relationship("Patient")
    encounter = relationship("Encounter")
    performer = relationship("Practitioner")


class MedicationStatement(Base):
    __tablename__ = "medication_statements"

    id = Column(String(36), primary_key=True, default=new_id)
    fhir_id = Column(String(64), unique=True, index=True)
    status = Column(String(20))
    category_code = Column(String(50))
    medication_code = Column(String(50))
    medication_display = Column(String(255))
    dosage = Column(String(255))
    route = Column(String(50))
    effective_start = Column(DateTime(timezone=True))
    effective_end = Column(DateTime(timezone=True))
    taken = Column(String(5))  # y, n, unk, na
    note = Column(Text)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    recorder_id = Column(String(36), ForeignKey("practitioners.id"))

    patient = relationship("Patient")
    recorder = relationship("Practitioner")
