"""
Patient-Applicability Matching Module

Normalizes FHIR patient records and checks them against a study's
inclusion and exclusion criteria.
"""

from .terminology import (
    # Data classes
    TerminologyTables,
    ConditionClass,
    MedicationClass,
    LOINC,
    SNOMED,

    # Global instances
    TERMINOLOGY,
)
from .normalizer import (
    RecordNormalizer,
    normalize,
    calculate_age,
    parse_fhir_date,
)
from .resolver import (
    SnapshotResolver,
    has_condition,
    has_medication,
    get_biomarker_value,
)
from .applicability import (
    ApplicabilityEvaluator,
    ApplicabilityChecker,
    evaluate_applicability,
    BIOMARKER_CHECK_LIMIT,
)
from .summary import (
    build_patient_summary,
    format_patient_for_prompt,
)

__all__ = [
    "TerminologyTables",
    "ConditionClass",
    "MedicationClass",
    "LOINC",
    "SNOMED",
    "TERMINOLOGY",
    "RecordNormalizer",
    "normalize",
    "calculate_age",
    "parse_fhir_date",
    "SnapshotResolver",
    "has_condition",
    "has_medication",
    "get_biomarker_value",
    "ApplicabilityEvaluator",
    "ApplicabilityChecker",
    "evaluate_applicability",
    "BIOMARKER_CHECK_LIMIT",
    "build_patient_summary",
    "format_patient_for_prompt",
]
