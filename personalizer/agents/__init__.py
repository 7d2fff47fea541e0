from .base_agent import BaseAgent
from .applicability_review_agent import ApplicabilityReviewAgent, format_criteria_for_prompt

__all__ = [
    "BaseAgent",
    "ApplicabilityReviewAgent",
    "format_criteria_for_prompt",
]
