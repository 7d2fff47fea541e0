import logging
from typing import Any, Dict, List, Optional

from .base_agent import BaseAgent
from ..core.config import settings
from ..matching.summary import format_patient_for_prompt
from ..schemas.paper import ConditionLogic, StudyCriteria
from ..schemas.patient import PatientSnapshot
from ..schemas.result import (
    ApplicabilityReason,
    ApplicabilityResult,
    ApplicabilityStage,
    ReasonKind,
)


logger = logging.getLogger(__name__)


def format_criteria_for_prompt(criteria: StudyCriteria) -> str:
    lines = [f"Inclusion Criteria: {criteria.inclusion_criteria or 'Not specified'}"]

    if criteria.exclusion_criteria:
        lines.append(f"Exclusion Criteria: {criteria.exclusion_criteria}")

    demographics = criteria.population_demographics
    if demographics:
        if demographics.age_range:
            lines.append(f"Age Range: {demographics.age_range}")
        if demographics.required_conditions:
            joiner = " or " if demographics.required_condition_logic == ConditionLogic.OR else ", "
            lines.append(f"Required Conditions: {joiner.join(demographics.required_conditions)}")
        if demographics.required_medications:
            lines.append(f"Required Medications: {', '.join(demographics.required_medications)}")
        if demographics.excluded_conditions:
            lines.append(f"Excluded Conditions: {', '.join(demographics.excluded_conditions)}")

    if criteria.intervention:
        lines.append(f"Intervention: {criteria.intervention}")

    lines.append(f"Biomarkers Studied: {', '.join(criteria.biomarkers)}")
    return "\n".join(lines)


class ApplicabilityReviewAgent(BaseAgent):
    """
    Agent that reads the free-text study criteria against the patient
    record, after the rule-based checks have already passed.
    """

    def __init__(self, llm=None, temperature: Optional[float] = None):
        super().__init__(
            name="Applicability Review Agent",
            description="Judge whether a study's findings apply to a patient beyond the coded checks.",
            llm=llm,
        )
        if temperature is None:
            temperature = settings.NUANCED_CHECK_TEMPERATURE
        self.temperature = temperature

    def get_system_prompt(self) -> str:
        return """You are a clinical research reviewer. A patient has already passed basic age, condition, medication and lab checks for a study. Decide whether the study's findings still apply to this patient.

Read the inclusion and exclusion criteria carefully. Look for anything the basic checks could miss:
- exclusion criteria written in free text
- disease severity, staging or timing requirements
- lab thresholds the patient clearly falls outside of

Rules:
- Only report a reason when the patient record clearly conflicts with the criteria
- Missing information is NOT a reason to exclude the patient
- Each reason "type" must be one of: "age", "condition", "medication", "exclusion", "biomarker"

Return JSON:
{
    "isApplicable": true,
    "reasons": [
        {"type": "exclusion", "description": "short statement", "details": "optional explanation"}
    ]
}"""

    async def process(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Review a patient against a study after the rule-based stage passed.

        Input:
            - snapshot: The normalized PatientSnapshot
            - criteria: The study's StudyCriteria

        Output:
            - applicability: ApplicabilityResult with stage "nuanced"

        The LLM service raises ValueError when the reply is not a JSON
        object and RuntimeError when no provider answers.
        """
        snapshot: PatientSnapshot = input_data["snapshot"]
        criteria: StudyCriteria = input_data["criteria"]

        prompt = f"""Patient data:
{format_patient_for_prompt(snapshot)}

Study criteria:
{format_criteria_for_prompt(criteria)}

Does this study apply to this patient?"""

        parsed = await self.llm.generate_json(prompt, self.get_system_prompt(), temperature=self.temperature)

        reasons = self._parse_reasons(parsed.get("reasons"))
        is_applicable = parsed.get("isApplicable")
        if is_applicable is None:
            is_applicable = True
        elif isinstance(is_applicable, str):
            is_applicable = is_applicable.strip().lower() != "false"

        logger.info("%s: applicable=%s with %d reasons", self.name, is_applicable, len(reasons))
        return {
            "applicability": ApplicabilityResult(
                is_applicable=bool(is_applicable),
                reasons=reasons,
                stage=ApplicabilityStage.NUANCED,
            )
        }

    @staticmethod
    def _parse_reasons(raw_reasons: Any) -> List[ApplicabilityReason]:
        reasons = []
        for raw in raw_reasons or []:
            if not isinstance(raw, dict):
                continue
            try:
                kind = ReasonKind(str(raw.get("type", "")).lower())
            except ValueError:
                kind = ReasonKind.CONDITION
            details = raw.get("details")
            reasons.append(ApplicabilityReason(
                kind=kind,
                description=str(raw.get("description") or ""),
                details=str(details) if details is not None else None,
            ))
        return reasons
