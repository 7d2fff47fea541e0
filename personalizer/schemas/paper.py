"""
Study criteria as produced by the external paper parser.

The parser emits camelCase JSON (`populationDemographics.minAge`, ...);
snake_case names are accepted too. Lists sent as null behave as empty.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ConditionLogic(str, Enum):
    """How multiple required conditions combine."""
    AND = "AND"   # every listed condition must be present
    OR = "OR"     # any one listed condition is enough


class CriteriaModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class PopulationDemographics(CriteriaModel):
    age_range: Optional[str] = Field(None, description="Free text, only shown to the nuanced review")
    min_age: Optional[float] = None
    max_age: Optional[float] = None
    required_conditions: List[str] = Field(default_factory=list)
    required_condition_logic: ConditionLogic = ConditionLogic.AND
    required_medications: List[str] = Field(default_factory=list)
    excluded_conditions: List[str] = Field(default_factory=list)

    @field_validator("required_condition_logic", mode="before")
    @classmethod
    def _upper_logic(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class StudyCriteria(CriteriaModel):
    """Inclusion/exclusion information for one paper."""
    title: Optional[str] = None
    biomarkers: List[str] = Field(default_factory=list, description="Ordered by importance")
    inclusion_criteria: Optional[str] = None
    exclusion_criteria: Optional[str] = None
    population_demographics: Optional[PopulationDemographics] = None

    # Descriptive fields, only used when prompting the nuanced check
    intervention: Optional[str] = None
    primary_endpoint: Optional[str] = None
    follow_up_duration: Optional[str] = None

    @property
    def demographics(self) -> PopulationDemographics:
        return self.population_demographics or PopulationDemographics()
