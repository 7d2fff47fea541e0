"""
Raw FHIR R4 resources consumed by the record normalizer.

Only the fields the normalizer reads are modelled; everything else in a
resource is ignored. Every field is optional so a sparse resource still
validates, and explicit JSON nulls are treated as absent. A malformed
element falls back to its default instead of failing the whole resource,
so one bad sub-field never costs the rest of a record.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


logger = logging.getLogger(__name__)

QUANTITY_COMPARATORS = ("<=", ">=", "<", ">")


def format_number(value: float) -> str:
    """Render 40.0 as "40" and keep 2.5 as "2.5"."""
    return str(int(value)) if float(value).is_integer() else str(value)


class FhirModel(BaseModel):
    """Base for FHIR elements: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_error(cls, value: Any, handler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError as e:
            # resourceType drives dispatch and must stay strict
            if info.field_name == "resource_type":
                raise
            logger.debug("Dropping malformed %s.%s: %s", cls.__name__, info.field_name, e.errors()[0]["msg"])
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)


# -----------------------------------------------------------------------------
# Data types
# -----------------------------------------------------------------------------

class Coding(FhirModel):
    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None


class CodeableConcept(FhirModel):
    coding: List[Coding] = Field(default_factory=list)
    text: Optional[str] = None

    @property
    def first_coding(self) -> Optional[Coding]:
        return self.coding[0] if self.coding else None

    def code_for_system(self, *fragments: str) -> Optional[str]:
        """Code of the first coding whose system URI contains any fragment."""
        for coding in self.coding:
            system = (coding.system or "").lower()
            if any(fragment in system for fragment in fragments):
                return coding.code
        return None

    def display_text(self) -> Optional[str]:
        """`text`, falling back to the first coding's display."""
        if self.text:
            return self.text
        first = self.first_coding
        return first.display if first and first.display else None


class Quantity(FhirModel):
    value: Optional[float] = None
    comparator: Optional[str] = None
    unit: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _split_comparator(cls, data: Any) -> Any:
        # Some feeds write "<5" into value instead of using comparator
        if isinstance(data, dict) and isinstance(data.get("value"), str):
            text = data["value"].strip()
            for comparator in QUANTITY_COMPARATORS:
                if text.startswith(comparator):
                    data = {**data, "value": text[len(comparator):].strip()}
                    data.setdefault("comparator", comparator)
                    break
        return data

    def describe_value(self) -> Optional[str]:
        """Value as text, prefixed with the comparator if there is one ("<5")."""
        if self.value is None:
            return None
        return f"{self.comparator or ''}{format_number(self.value)}"


class Reference(FhirModel):
    reference: Optional[str] = None


class Period(FhirModel):
    start: Optional[str] = None
    end: Optional[str] = None


class HumanName(FhirModel):
    given: List[str] = Field(default_factory=list)
    family: Optional[str] = None

    @field_validator("given", mode="before")
    @classmethod
    def _single_given_name(cls, value: Any) -> Any:
        return [value] if isinstance(value, str) else value


class DoseAndRate(FhirModel):
    dose_quantity: Optional[Quantity] = None


class Dosage(FhirModel):
    text: Optional[str] = None
    dose_and_rate: List[DoseAndRate] = Field(default_factory=list)

    def describe(self) -> Optional[str]:
        """Free-text dosage, or "value unit" from the first dose quantity."""
        if self.text:
            return self.text
        dose = self.dose_and_rate[0].dose_quantity if self.dose_and_rate else None
        if dose is None:
            return None
        return f"{dose.describe_value() or ''} {dose.unit or ''}".strip() or None


# -----------------------------------------------------------------------------
# Resources
# -----------------------------------------------------------------------------

class PatientResource(FhirModel):
    resource_type: Literal["Patient"] = "Patient"
    id: Optional[str] = None
    birth_date: Optional[str] = None
    gender: Optional[str] = None
    name: List[HumanName] = Field(default_factory=list)


class ObservationResource(FhirModel):
    resource_type: Literal["Observation"] = "Observation"
    id: Optional[str] = None
    code: Optional[CodeableConcept] = None
    effective_date_time: Optional[str] = None
    value_quantity: Optional[Quantity] = None
    value_string: Optional[str] = None
    value_codeable_concept: Optional[CodeableConcept] = None
    value_boolean: Optional[bool] = None
    value_integer: Optional[int] = None
    interpretation: List[CodeableConcept] = Field(default_factory=list)

    @property
    def lab_code(self) -> Optional[str]:
        first = self.code.first_coding if self.code else None
        return first.code if first and first.code else None


class ConditionResource(FhirModel):
    resource_type: Literal["Condition"] = "Condition"
    id: Optional[str] = None
    code: Optional[CodeableConcept] = None
    clinical_status: Optional[CodeableConcept] = None
    onset_date_time: Optional[str] = None
    onset_period: Optional[Period] = None


class MedicationResource(FhirModel):
    resource_type: Literal["Medication"] = "Medication"
    id: Optional[str] = None
    code: Optional[CodeableConcept] = None


class MedicationStatementResource(FhirModel):
    resource_type: Literal["MedicationStatement"] = "MedicationStatement"
    id: Optional[str] = None
    status: Optional[str] = None
    medication_codeable_concept: Optional[CodeableConcept] = None
    medication_reference: Optional[Reference] = None
    dosage: List[Dosage] = Field(default_factory=list)
    effective_period: Optional[Period] = None
    effective_date_time: Optional[str] = None


class MedicationRequestResource(FhirModel):
    resource_type: Literal["MedicationRequest"] = "MedicationRequest"
    id: Optional[str] = None
    status: Optional[str] = None
    medication_codeable_concept: Optional[CodeableConcept] = None
    medication_reference: Optional[Reference] = None
    dosage_instruction: List[Dosage] = Field(default_factory=list)
    authored_on: Optional[str] = None


FhirResource = Union[
    PatientResource,
    ObservationResource,
    ConditionResource,
    MedicationResource,
    MedicationStatementResource,
    MedicationRequestResource,
]

# resourceType -> model; kinds not listed here are ignored by the normalizer
RESOURCE_MODELS: Dict[str, Type[FhirModel]] = {
    "Patient": PatientResource,
    "Observation": ObservationResource,
    "Condition": ConditionResource,
    "Medication": MedicationResource,
    "MedicationStatement": MedicationStatementResource,
    "MedicationRequest": MedicationRequestResource,
}
