"""RNDS patient portal backend: BR Core FHIR bundles of a patient's clinical history."""
