"""
Snapshot Resolver

Answers "does this patient have condition X / medication Y / biomarker Z"
against a PatientSnapshot, using the curated terminology tables.

Condition matching, first hit wins:
1. SNOMED code in the class's codes (or equal to the raw query)
2. ICD-10 code equal to, or a subcode of, a class code
3. display name and a class term contain one another
4. the same three steps against each declared parent class

Queries with no curated class fall back to the query text as the only term.
"""

from typing import Optional, Sequence

from ..schemas.patient import ObservationValue, PatientCondition, PatientSnapshot
from .terminology import (
    RETAINED_STATEMENT_STATUSES,
    TERMINOLOGY,
    ConditionClass,
    MedicationClass,
    TerminologyTables,
)


def _normalize_query(text: str) -> str:
    return text.lower().strip()


class SnapshotResolver:
    """Pure lookups over a PatientSnapshot."""

    def __init__(self, terminology: TerminologyTables = TERMINOLOGY):
        self.terminology = terminology

    # -------------------------------------------------------------------------
    # CONDITIONS
    # -------------------------------------------------------------------------

    def has_condition(self, snapshot: PatientSnapshot, condition: str) -> bool:
        """True if the patient has the condition class (or raw code / term)."""
        normalized = _normalize_query(condition)

        if self._has_condition_direct(snapshot, normalized):
            return True

        # One level only: parents are checked directly, never their own parents
        condition_class = self.terminology.condition_class(normalized)
        if condition_class:
            for parent in condition_class.parents:
                if self._has_condition_direct(snapshot, parent):
                    return True

        return False

    def _has_condition_direct(self, snapshot: PatientSnapshot, normalized: str) -> bool:
        condition_class = self.terminology.condition_class(normalized)
        if condition_class is None:
            condition_class = ConditionClass(terms=(normalized,))

        return any(
            self._condition_matches(cond, normalized, condition_class)
            for cond in snapshot.conditions
        )

    @staticmethod
    def _condition_matches(
        cond: PatientCondition,
        normalized: str,
        condition_class: ConditionClass
    ) -> bool:
        # 1. SNOMED
        if cond.standard_code:
            if cond.standard_code in condition_class.standard_codes:
                return True
            if cond.standard_code == normalized:
                return True

        # 2. ICD-10, prefix match for subcodes
        if cond.alternate_code:
            for code in condition_class.alternate_codes:
                if cond.alternate_code.startswith(code):
                    return True

        # 3. Text, either direction. Short terms such as "mi" also hit
        # unrelated words that happen to contain them.
        display = cond.display_name.lower()
        return _terms_overlap(display, condition_class.terms)

    # -------------------------------------------------------------------------
    # MEDICATIONS
    # -------------------------------------------------------------------------

    def has_medication(self, snapshot: PatientSnapshot, medication: str) -> bool:
        """True if the patient is on a drug of this class (or raw code / name)."""
        normalized = _normalize_query(medication)
        medication_class = self.terminology.medication_class(normalized)
        if medication_class is None:
            medication_class = MedicationClass(terms=(normalized,))

        for med in snapshot.medications:
            if med.status not in RETAINED_STATEMENT_STATUSES:
                continue

            if med.standard_code and (
                med.standard_code in medication_class.standard_codes
                or med.standard_code == normalized
            ):
                return True

            name = med.name.lower()
            if any(term in name for term in medication_class.terms):
                return True

        return False

    # -------------------------------------------------------------------------
    # BIOMARKERS
    # -------------------------------------------------------------------------

    def get_biomarker_value(self, snapshot: PatientSnapshot, biomarker: str) -> Optional[ObservationValue]:
        """Latest observation for a biomarker name, or None."""
        normalized = _normalize_query(biomarker)

        for code in self.terminology.codes_for_biomarker(normalized):
            value = snapshot.observations.get(code)
            if value is not None:
                return value

        # Fallback: search by display name
        for obs in snapshot.observations.values():
            if obs.display_name and normalized in obs.display_name.lower():
                return obs

        return None


def _terms_overlap(display: str, terms: Sequence[str]) -> bool:
    return any(term in display or display in term for term in terms)


# Default resolver over the global tables
_default_resolver = SnapshotResolver()


def has_condition(snapshot: PatientSnapshot, condition: str) -> bool:
    return _default_resolver.has_condition(snapshot, condition)


def has_medication(snapshot: PatientSnapshot, medication: str) -> bool:
    return _default_resolver.has_medication(snapshot, medication)


def get_biomarker_value(snapshot: PatientSnapshot, biomarker: str) -> Optional[ObservationValue]:
    return _default_resolver.get_biomarker_value(snapshot, biomarker)
