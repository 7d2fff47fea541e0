from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Literal, Optional, Tuple, Union


Sex = Literal["male", "female", "other", "unknown"]


class ObservationValue(BaseModel):
    """Most recent value recorded for one lab code."""
    model_config = ConfigDict(frozen=True)

    value: Union[float, str]
    unit: Optional[str] = None
    observed_date: Optional[str] = None
    lab_code: Optional[str] = None
    display_name: Optional[str] = None
    interpretation: Optional[str] = None


class PatientCondition(BaseModel):
    """A retained diagnosis; standard_code is SNOMED CT, alternate_code is ICD-10."""
    model_config = ConfigDict(frozen=True)

    display_name: str
    standard_code: Optional[str] = None
    alternate_code: Optional[str] = None
    status: str = Field(..., description="'active', 'resolved' or 'recurrence'")
    onset_date: Optional[str] = None


class PatientMedication(BaseModel):
    """A retained medication; standard_code is RxNorm."""
    model_config = ConfigDict(frozen=True)

    name: str
    status: str = Field(..., description="'active', 'intended' or 'on-hold'")
    dosage: Optional[str] = None
    start_date: Optional[str] = None
    standard_code: Optional[str] = None


class PatientSnapshot(BaseModel):
    """
    Canonical view of one patient's record for a single evaluation.

    Built once per request by the record normalizer and never mutated.
    """
    model_config = ConfigDict(frozen=True)

    age: Optional[int] = None
    sex: Sex = "unknown"
    birth_date: Optional[str] = None
    name: Optional[str] = None
    observations: Dict[str, ObservationValue] = Field(default_factory=dict)
    conditions: Tuple[PatientCondition, ...] = ()
    medications: Tuple[PatientMedication, ...] = ()
