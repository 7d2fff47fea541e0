from .fhir import RESOURCE_MODELS, FhirResource
from .patient import ObservationValue, PatientCondition, PatientMedication, PatientSnapshot
from .paper import ConditionLogic, PopulationDemographics, StudyCriteria
from .result import (
    ApplicabilityReason,
    ApplicabilityResult,
    ApplicabilityStage,
    BiomarkerReading,
    PatientSummary,
    ReasonKind,
)

__all__ = [
    "RESOURCE_MODELS",
    "FhirResource",
    "ObservationValue",
    "PatientCondition",
    "PatientMedication",
    "PatientSnapshot",
    "ConditionLogic",
    "PopulationDemographics",
    "StudyCriteria",
    "ApplicabilityReason",
    "ApplicabilityResult",
    "ApplicabilityStage",
    "BiomarkerReading",
    "PatientSummary",
    "ReasonKind",
]
