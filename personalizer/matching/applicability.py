"""
Applicability Evaluator

Decides whether a study's findings apply to a patient, in two stages:

1. Rule-based checklist (synchronous, deterministic). Six checks always run,
   in a fixed order, so identical inputs produce identical reasons:
     1. age lower bound
     2. age upper bound
     3. required conditions (AND / OR)
     4. required medications
     5. excluded conditions
     6. biomarker availability (first N biomarkers, any one is enough)
   The patient is applicable exactly when no reason was recorded.

2. Nuanced review (async, optional). Only runs when the checklist passes.
   A review agent may add reasons or reverse the decision. When the agent
   is missing, switched off or fails, the patient is treated as applicable
   and a caveat is attached to the result.
"""

import logging
from typing import Any, List, Optional, Protocol

from ..core.config import settings
from ..schemas.fhir import format_number
from ..schemas.paper import ConditionLogic, StudyCriteria
from ..schemas.patient import PatientSnapshot
from ..schemas.result import (
    ApplicabilityReason,
    ApplicabilityResult,
    ApplicabilityStage,
    ReasonKind,
)
from .resolver import SnapshotResolver


logger = logging.getLogger(__name__)

# Only the first few biomarkers (ordered by importance) are checked for availability
BIOMARKER_CHECK_LIMIT = settings.BIOMARKER_CHECK_LIMIT

FALLBACK_CAVEAT = (
    "Detailed eligibility review was unavailable; applicability is based on "
    "the rule-based checks only."
)


class ApplicabilityEvaluator:
    """
    Rule-based applicability checklist.

    Stateless; share one instance across requests.
    """

    def __init__(
        self,
        resolver: Optional[SnapshotResolver] = None,
        biomarker_check_limit: Optional[int] = None
    ):
        self.resolver = resolver or SnapshotResolver()
        if biomarker_check_limit is None:
            biomarker_check_limit = BIOMARKER_CHECK_LIMIT
        self.biomarker_check_limit = biomarker_check_limit

    def evaluate(self, snapshot: PatientSnapshot, criteria: StudyCriteria) -> ApplicabilityResult:
        reasons: List[ApplicabilityReason] = []

        reasons.extend(self._check_age(snapshot, criteria))
        reasons.extend(self._check_required_conditions(snapshot, criteria))
        reasons.extend(self._check_required_medications(snapshot, criteria))
        reasons.extend(self._check_excluded_conditions(snapshot, criteria))
        reasons.extend(self._check_biomarkers(snapshot, criteria))

        return ApplicabilityResult.from_reasons(reasons)

    # -------------------------------------------------------------------------
    # CHECKS
    # -------------------------------------------------------------------------

    def _check_age(self, snapshot: PatientSnapshot, criteria: StudyCriteria) -> List[ApplicabilityReason]:
        """
        Numeric bounds only; the free-text age range is left to the nuanced review.
        Skipped entirely when the patient's age or a bound is unknown.
        """
        reasons = []
        if snapshot.age is None:
            return reasons

        demographics = criteria.demographics
        min_age, max_age = demographics.min_age, demographics.max_age

        if min_age is not None and snapshot.age < min_age:
            reasons.append(ApplicabilityReason(
                kind=ReasonKind.AGE,
                description=f"Patient age ({snapshot.age}) is below the study minimum age ({format_number(min_age)})",
                details=f"The study enrolled patients {format_number(min_age)}+ years old",
            ))

        if max_age is not None and snapshot.age > max_age:
            reasons.append(ApplicabilityReason(
                kind=ReasonKind.AGE,
                description=f"Patient age ({snapshot.age}) exceeds the study maximum age ({format_number(max_age)})",
                details=f"The study enrolled patients up to {format_number(max_age)} years old",
            ))

        return reasons

    def _check_required_conditions(
        self,
        snapshot: PatientSnapshot,
        criteria: StudyCriteria
    ) -> List[ApplicabilityReason]:
        demographics = criteria.demographics
        required = demographics.required_conditions
        if not required:
            return []

        if demographics.required_condition_logic == ConditionLogic.OR:
            if any(self.resolver.has_condition(snapshot, cond) for cond in required):
                return []
            return [ApplicabilityReason(
                kind=ReasonKind.CONDITION,
                description="Patient does not have any of the required conditions",
                details=f"The study required patients to have at least one of: {', '.join(required)}",
            )]

        return [
            ApplicabilityReason(
                kind=ReasonKind.CONDITION,
                description=f"Patient does not have required condition: {cond}",
                details=f"The study required patients to have {cond}",
            )
            for cond in required
            if not self.resolver.has_condition(snapshot, cond)
        ]

    def _check_required_medications(
        self,
        snapshot: PatientSnapshot,
        criteria: StudyCriteria
    ) -> List[ApplicabilityReason]:
        return [
            ApplicabilityReason(
                kind=ReasonKind.MEDICATION,
                description=f"Patient is not on required medication: {med}",
                details=f"The study required patients to be taking {med}",
            )
            for med in criteria.demographics.required_medications
            if not self.resolver.has_medication(snapshot, med)
        ]

    def _check_excluded_conditions(
        self,
        snapshot: PatientSnapshot,
        criteria: StudyCriteria
    ) -> List[ApplicabilityReason]:
        return [
            ApplicabilityReason(
                kind=ReasonKind.EXCLUSION,
                description=f"Patient has excluded condition: {cond}",
                details=f"The study excluded patients who already have {cond}",
            )
            for cond in criteria.demographics.excluded_conditions
            if self.resolver.has_condition(snapshot, cond)
        ]

    def _check_biomarkers(self, snapshot: PatientSnapshot, criteria: StudyCriteria) -> List[ApplicabilityReason]:
        """Fails only when none of the leading biomarkers is on record."""
        to_check = criteria.biomarkers[:self.biomarker_check_limit]
        if not to_check:
            return []

        if any(self.resolver.get_biomarker_value(snapshot, b) is not None for b in to_check):
            return []

        primary = to_check[0]
        return [ApplicabilityReason(
            kind=ReasonKind.BIOMARKER,
            description=f"Missing biomarker data: {primary}",
            details=(
                f"The study results are based on {primary} levels, which are not in the "
                f"patient's records. Consider getting this lab test."
            ),
        )]


# =============================================================================
# NUANCED STAGE
# =============================================================================

class ReviewAgent(Protocol):
    """Anything with the agent `process` contract returning {"applicability": ApplicabilityResult}."""

    async def process(self, input_data: Any) -> Any:
        ...


class ApplicabilityChecker:
    """
    Rule-based checklist followed by an optional nuanced review.

    Example:
        checker = ApplicabilityChecker(review_agent=ApplicabilityReviewAgent())
        result = await checker.check(snapshot, criteria)
    """

    def __init__(
        self,
        evaluator: Optional[ApplicabilityEvaluator] = None,
        review_agent: Optional[ReviewAgent] = None,
        nuanced_enabled: Optional[bool] = None
    ):
        self.evaluator = evaluator or ApplicabilityEvaluator()
        self.review_agent = review_agent
        if nuanced_enabled is None:
            nuanced_enabled = settings.NUANCED_CHECK_ENABLED
        self.nuanced_enabled = nuanced_enabled

    async def check(self, snapshot: PatientSnapshot, criteria: StudyCriteria) -> ApplicabilityResult:
        rule_result = self.evaluator.evaluate(snapshot, criteria)
        if not rule_result.is_applicable:
            return rule_result

        if self.review_agent is None or not self.nuanced_enabled:
            logger.warning("Nuanced applicability review not configured, using optimistic fallback")
            return self.fallback_result()

        try:
            output = await self.review_agent.process({"snapshot": snapshot, "criteria": criteria})
            return output["applicability"]
        except Exception as e:
            logger.warning("Nuanced applicability review failed, using optimistic fallback: %s", e)
            return self.fallback_result()

    @staticmethod
    def fallback_result() -> ApplicabilityResult:
        """Applicable, no reasons, with a caveat for the caller to surface."""
        return ApplicabilityResult(
            is_applicable=True,
            reasons=[],
            caveats=[FALLBACK_CAVEAT],
            stage=ApplicabilityStage.FALLBACK,
        )


# Default evaluator over the global tables
_default_evaluator = ApplicabilityEvaluator()


def evaluate_applicability(snapshot: PatientSnapshot, criteria: StudyCriteria) -> ApplicabilityResult:
    """Rule-based stage only."""
    return _default_evaluator.evaluate(snapshot, criteria)
