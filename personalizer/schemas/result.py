from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum


class ReasonKind(str, Enum):
    """Which applicability check produced a reason."""
    AGE = "age"
    CONDITION = "condition"
    MEDICATION = "medication"
    EXCLUSION = "exclusion"
    BIOMARKER = "biomarker"


class ApplicabilityStage(str, Enum):
    """Which stage decided the final result."""
    RULE_BASED = "rule_based"
    NUANCED = "nuanced"
    FALLBACK = "fallback"   # nuanced check failed, optimistic default used


class ApplicabilityReason(BaseModel):
    """One human-readable reason the study may not apply to the patient."""
    kind: ReasonKind
    description: str
    details: Optional[str] = None


class ApplicabilityResult(BaseModel):
    """Outcome of checking a patient against a study's criteria."""
    is_applicable: bool
    reasons: List[ApplicabilityReason] = Field(default_factory=list)
    caveats: List[str] = Field(default_factory=list, description="Non-blocking notes for the caller to surface")
    stage: ApplicabilityStage = ApplicabilityStage.RULE_BASED

    @classmethod
    def from_reasons(cls, reasons: List[ApplicabilityReason]) -> "ApplicabilityResult":
        """Rule-based result: applicable exactly when no reason was recorded."""
        return cls(is_applicable=not reasons, reasons=list(reasons))


class BiomarkerReading(BaseModel):
    name: str
    value: str
    unit: Optional[str] = None
    date: Optional[str] = None


class PatientSummary(BaseModel):
    """Compact patient view for display and prompting."""
    age: Optional[int] = None
    sex: str = "unknown"
    relevant_biomarkers: List[BiomarkerReading] = Field(default_factory=list)
    relevant_conditions: List[str] = Field(default_factory=list)
    relevant_medications: List[str] = Field(default_factory=list)
