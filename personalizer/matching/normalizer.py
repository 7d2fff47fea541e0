"""
Record Normalizer

Turns a raw FHIR bundle into a PatientSnapshot:
- demographics (age relative to an injectable "now", sex, name)
- the most recent observation per LOINC code
- conditions whose clinical status is active, resolved or recurrence
- active / intended / on-hold medications, names resolved through
  inline concepts or Medication resources in the same bundle

Normalization never fails on sparse data. A resource that does not
validate is skipped and the rest of the bundle is still processed.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from ..schemas.fhir import (
    RESOURCE_MODELS,
    CodeableConcept,
    ConditionResource,
    FhirResource,
    MedicationRequestResource,
    MedicationResource,
    MedicationStatementResource,
    ObservationResource,
    PatientResource,
    Reference,
)
from ..schemas.patient import (
    ObservationValue,
    PatientCondition,
    PatientMedication,
    PatientSnapshot,
)
from .terminology import (
    RETAINED_CONDITION_STATUSES,
    RETAINED_REQUEST_STATUSES,
    RETAINED_STATEMENT_STATUSES,
    TERMINOLOGY,
    TerminologyTables,
)


logger = logging.getLogger(__name__)

UNKNOWN_MEDICATION = "Unknown medication"
UNKNOWN_CONDITION = "Unknown condition"

VALID_SEXES = ("male", "female", "other", "unknown")

# Partial FHIR dates ("2023-05", "2023") that fromisoformat rejects
PARTIAL_DATE_FORMATS = ["%Y-%m", "%Y"]


# =============================================================================
# DATE HELPERS
# =============================================================================

def parse_fhir_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a FHIR date / dateTime into a timezone-aware datetime.

    Values without an offset are taken as UTC so that every parsed date
    is comparable. Returns None for anything unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in PARTIAL_DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_age(birth_date: Optional[str], now: Union[date, datetime, None] = None) -> Optional[int]:
    """Completed years between birth_date and now (anniversary based)."""
    born = parse_fhir_date(birth_date)
    if born is None:
        return None
    if now is None:
        today = datetime.now(timezone.utc).date()
    elif isinstance(now, datetime):
        today = now.date()
    else:
        today = now
    born_day = born.date()
    return today.year - born_day.year - ((today.month, today.day) < (born_day.month, born_day.day))


# =============================================================================
# BUNDLE PARSING
# =============================================================================

def iter_resources(raw_bundle: Any) -> List[FhirResource]:
    """
    Validate the known resources in a bundle.

    Accepts a Bundle mapping (with "entry": [{"resource": {...}}]) or any
    iterable of resource mappings. Unknown resource kinds are ignored and
    invalid resources are skipped.
    """
    if isinstance(raw_bundle, Mapping):
        if raw_bundle.get("resourceType") == "Bundle" or "entry" in raw_bundle:
            raw_items = [
                entry.get("resource") if isinstance(entry, Mapping) else None
                for entry in (raw_bundle.get("entry") or [])
            ]
        else:
            # A single resource on its own
            raw_items = [raw_bundle]
    elif isinstance(raw_bundle, Iterable) and not isinstance(raw_bundle, (str, bytes)):
        raw_items = list(raw_bundle)
    else:
        raise TypeError(f"Expected a FHIR Bundle or an iterable of resources, got {type(raw_bundle).__name__}")

    resources: List[FhirResource] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, Mapping):
            continue
        model = RESOURCE_MODELS.get(raw.get("resourceType"))
        if model is None:
            continue
        try:
            resources.append(model.model_validate(raw))
        except ValidationError as e:
            logger.debug("Skipping malformed %s at entry %d: %s", raw.get("resourceType"), index, e)
    return resources


# =============================================================================
# NORMALIZER
# =============================================================================

class RecordNormalizer:
    """
    Builds a PatientSnapshot from raw FHIR resources.

    Stateless between calls; one instance can serve concurrent requests.
    """

    def __init__(self, terminology: TerminologyTables = TERMINOLOGY):
        self.terminology = terminology

    def normalize(self, raw_bundle: Any, now: Union[date, datetime, None] = None) -> PatientSnapshot:
        patient: Optional[PatientResource] = None
        observations: List[ObservationResource] = []
        conditions: List[ConditionResource] = []
        statements: List[MedicationStatementResource] = []
        requests: List[MedicationRequestResource] = []
        medication_map: Dict[str, MedicationResource] = {}

        for resource in iter_resources(raw_bundle):
            if isinstance(resource, PatientResource):
                patient = resource  # last one wins
            elif isinstance(resource, ObservationResource):
                observations.append(resource)
            elif isinstance(resource, ConditionResource):
                conditions.append(resource)
            elif isinstance(resource, MedicationStatementResource):
                statements.append(resource)
            elif isinstance(resource, MedicationRequestResource):
                requests.append(resource)
            elif isinstance(resource, MedicationResource) and resource.id:
                medication_map[resource.id] = resource
                medication_map[f"Medication/{resource.id}"] = resource

        age, sex, birth_date, name = self._extract_demographics(patient, now)

        snapshot = PatientSnapshot(
            age=age,
            sex=sex,
            birth_date=birth_date,
            name=name,
            observations=self._latest_observations(observations),
            conditions=tuple(self._extract_conditions(conditions)),
            medications=tuple(self._extract_medications(statements, requests, medication_map)),
        )
        logger.info(
            "Normalized patient record: age=%s, %d observations, %d conditions, %d medications",
            snapshot.age, len(snapshot.observations), len(snapshot.conditions), len(snapshot.medications),
        )
        return snapshot

    # -------------------------------------------------------------------------
    # DEMOGRAPHICS
    # -------------------------------------------------------------------------

    def _extract_demographics(
        self,
        patient: Optional[PatientResource],
        now: Union[date, datetime, None]
    ) -> Tuple[Optional[int], str, Optional[str], Optional[str]]:
        if patient is None:
            return None, "unknown", None, None

        name = None
        if patient.name:
            first = patient.name[0]
            parts = list(first.given) + ([first.family] if first.family else [])
            if parts:
                name = " ".join(parts)

        gender = (patient.gender or "unknown").lower()
        sex = gender if gender in VALID_SEXES else "unknown"

        return calculate_age(patient.birth_date, now), sex, patient.birth_date, name

    # -------------------------------------------------------------------------
    # OBSERVATIONS
    # -------------------------------------------------------------------------

    def _latest_observations(self, observations: List[ObservationResource]) -> Dict[str, ObservationValue]:
        """Keep the most recent observation per lab code."""
        dated = []
        for obs in observations:
            observed_at = parse_fhir_date(obs.effective_date_time)
            if observed_at is None or obs.lab_code is None:
                continue
            dated.append((observed_at, obs))

        # list.sort is stable, so same-instant records keep bundle order
        dated.sort(key=lambda pair: pair[0], reverse=True)

        latest: Dict[str, ObservationValue] = {}
        for _, obs in dated:
            code = obs.lab_code
            if code in latest:
                continue
            formatted = self._format_observation_value(obs)
            if formatted is None:
                # No value at all: let an older record with a value claim the code
                continue

            quantity = obs.value_quantity
            # A qualified result ("<5") stays as text
            numeric = quantity and quantity.value is not None and not quantity.comparator
            value = quantity.value if numeric else formatted
            interpretation = obs.interpretation[0].first_coding if obs.interpretation else None

            latest[code] = ObservationValue(
                value=value,
                unit=quantity.unit if quantity else None,
                observed_date=obs.effective_date_time,
                lab_code=code,
                display_name=obs.code.display_text() if obs.code else None,
                interpretation=interpretation.display if interpretation else None,
            )
        return latest

    @staticmethod
    def _format_observation_value(obs: ObservationResource) -> Optional[str]:
        if obs.value_quantity is not None and obs.value_quantity.value is not None:
            return obs.value_quantity.describe_value()
        if obs.value_string is not None:
            return obs.value_string
        if obs.value_codeable_concept is not None:
            return obs.value_codeable_concept.display_text() or "See report"
        if obs.value_boolean is not None:
            return str(obs.value_boolean).lower()
        if obs.value_integer is not None:
            return str(obs.value_integer)
        return None

    # -------------------------------------------------------------------------
    # CONDITIONS
    # -------------------------------------------------------------------------

    def normalize_clinical_status(self, clinical_status: Optional[CodeableConcept]) -> str:
        """
        Resolve a Condition.clinicalStatus to a status token.

        Bundles carry it as a plain token ("active"), as a SNOMED code
        ("55561003"), or only in display / text. Anything else is "unknown".
        """
        if clinical_status is None:
            return "unknown"
        vocabulary = self.terminology.status_vocabulary

        first = clinical_status.first_coding
        code = first.code if first else None
        if code:
            lowered = code.lower()
            if lowered in vocabulary:
                return lowered
            if code in self.terminology.status_codes:
                return self.terminology.status_codes[code]

        display = ((first.display if first else None) or clinical_status.text or "").lower().strip()
        if display in vocabulary:
            return display

        return "unknown"

    def _extract_conditions(self, conditions: List[ConditionResource]) -> List[PatientCondition]:
        extracted = []
        for cond in conditions:
            status = self.normalize_clinical_status(cond.clinical_status)
            if status not in RETAINED_CONDITION_STATUSES:
                continue

            concept = cond.code or CodeableConcept()
            onset = cond.onset_date_time or (cond.onset_period.start if cond.onset_period else None)
            extracted.append(PatientCondition(
                display_name=concept.display_text() or UNKNOWN_CONDITION,
                standard_code=concept.code_for_system("snomed"),
                alternate_code=concept.code_for_system("icd-10", "icd10"),
                status=status,
                onset_date=onset if parse_fhir_date(onset) else None,
            ))
        return extracted

    # -------------------------------------------------------------------------
    # MEDICATIONS
    # -------------------------------------------------------------------------

    def _extract_medications(
        self,
        statements: List[MedicationStatementResource],
        requests: List[MedicationRequestResource],
        medication_map: Dict[str, MedicationResource]
    ) -> List[PatientMedication]:
        extracted = []

        for stmt in statements:
            status = stmt.status or "unknown"
            if status not in RETAINED_STATEMENT_STATUSES:
                continue
            name, rxnorm = self.resolve_medication(
                stmt.medication_codeable_concept, stmt.medication_reference, medication_map
            )
            extracted.append(PatientMedication(
                name=name,
                status=status,
                dosage=stmt.dosage[0].describe() if stmt.dosage else None,
                start_date=(stmt.effective_period.start if stmt.effective_period else None)
                or stmt.effective_date_time,
                standard_code=rxnorm,
            ))

        for req in requests:
            status = req.status or "unknown"
            if status not in RETAINED_REQUEST_STATUSES:
                continue
            name, rxnorm = self.resolve_medication(
                req.medication_codeable_concept, req.medication_reference, medication_map
            )
            extracted.append(PatientMedication(
                name=name,
                status=status,
                dosage=req.dosage_instruction[0].describe() if req.dosage_instruction else None,
                start_date=req.authored_on,
                standard_code=rxnorm,
            ))

        return extracted

    @staticmethod
    def resolve_medication(
        concept: Optional[CodeableConcept],
        reference: Optional[Reference],
        medication_map: Dict[str, MedicationResource]
    ) -> Tuple[str, Optional[str]]:
        """
        Name and RxNorm code for a medication statement or request.

        The inline concept wins; a Medication referenced from the same
        bundle fills whatever the inline concept lacks.
        """
        name = concept.display_text() if concept else None
        rxnorm = concept.code_for_system("rxnorm") if concept else None

        if (name is None or rxnorm is None) and reference and reference.reference:
            medication = medication_map.get(reference.reference)
            if medication and medication.code:
                name = name or medication.code.display_text()
                rxnorm = rxnorm or medication.code.code_for_system("rxnorm")

        return name or UNKNOWN_MEDICATION, rxnorm


_default_normalizer = RecordNormalizer()


def normalize(raw_bundle: Any, now: Union[date, datetime, None] = None) -> PatientSnapshot:
    """
    Build a PatientSnapshot from a raw FHIR bundle.

    Example:
        snapshot = normalize(bundle_json, now=date(2025, 1, 1))
    """
    return _default_normalizer.normalize(raw_bundle, now=now)
