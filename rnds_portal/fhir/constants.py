"""
BR Core naming constants

Profile, naming-system and code-system URIs used by the RNDS (Rede Nacional
de Dados em Saúde) BR Core resources, plus the HL7 terminology systems the
mappers attach to status fields.
"""

BR_CORE_PROFILES = {
    "Patient": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BRIndividuo-1.0",
    "Practitioner": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BRProfissional-1.0",
    "Organization": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BREstabelecimentoSaude-1.0",
    "Encounter": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BREncontro-1.0",
    "Observation": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BRObservacao-1.0",
    "Condition": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BRProblemaCondicaoAvaliacao-1.0",
    "AllergyIntolerance": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BRAlergiaReacaoAdversa-1.0",
    "Procedure": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BRProcedimentoRealizado-1.0",
    "MedicationStatement": "http://www.saude.gov.br/fhir/r4/StructureDefinition/BRMedicamento-1.0",
}

# National identifier / classification systems
BR_IDENTIFIER_SYSTEMS = {
    "CPF": "http://www.saude.gov.br/fhir/r4/NamingSystem/cpf",
    "CNS": "http://www.saude.gov.br/fhir/r4/NamingSystem/cns",
    "CNES": "http://www.saude.gov.br/fhir/r4/NamingSystem/cnes",
    "CBO": "http://www.saude.gov.br/fhir/r4/CodeSystem/BRCategoriaProfissional",
}

RESOURCE_TYPES = frozenset(BR_CORE_PROFILES)

UCUM_SYSTEM = "http://unitsofmeasure.org"
CID10_SYSTEM = "http://www.saude.gov.br/fhir/r4/CodeSystem/BRCID10"

CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CONDITION_VERIFICATION_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-ver-status"
CONDITION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"
ALLERGY_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical"
ALLERGY_VERIFICATION_SYSTEM = "http://terminology.hl7.org/CodeSystem/allergyintolerance-verification"
OBSERVATION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/observation-category"
OBSERVATION_INTERPRETATION_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ObservationInterpretation"
ENCOUNTER_CLASS_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
MARITAL_STATUS_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-MaritalStatus"
LANGUAGE_SYSTEM = "urn:ietf:bcp:47"

DEFAULT_ENCOUNTER_CLASS = "AMB"
DEFAULT_COUNTRY = "BR"
