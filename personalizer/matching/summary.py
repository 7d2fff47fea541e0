"""
Patient summary and prompt rendering.
"""

from typing import List

from ..schemas.fhir import format_number
from ..schemas.paper import StudyCriteria
from ..schemas.patient import ObservationValue, PatientSnapshot
from ..schemas.result import BiomarkerReading, PatientSummary
from .resolver import SnapshotResolver


_resolver = SnapshotResolver()


def _value_text(obs: ObservationValue) -> str:
    if isinstance(obs.value, float):
        return format_number(obs.value)
    return str(obs.value)


def build_patient_summary(
    snapshot: PatientSnapshot,
    criteria: StudyCriteria,
    resolver: SnapshotResolver = _resolver
) -> PatientSummary:
    """
    Patient view focused on what the study measures.

    One biomarker reading per study biomarker found in the record, named
    after the observation's display name when it has one.
    """
    readings: List[BiomarkerReading] = []
    for biomarker in criteria.biomarkers:
        obs = resolver.get_biomarker_value(snapshot, biomarker)
        if obs is None:
            continue
        readings.append(BiomarkerReading(
            name=obs.display_name or biomarker,
            value=_value_text(obs),
            unit=obs.unit,
            date=obs.observed_date,
        ))

    return PatientSummary(
        age=snapshot.age,
        sex=snapshot.sex,
        relevant_biomarkers=readings,
        relevant_conditions=[cond.display_name for cond in snapshot.conditions],
        relevant_medications=[med.name for med in snapshot.medications],
    )


def format_patient_for_prompt(snapshot: PatientSnapshot) -> str:
    lines = [
        f"Age: {snapshot.age if snapshot.age is not None else 'Unknown'}",
        f"Sex: {snapshot.sex}",
    ]

    if snapshot.conditions:
        lines.append("\nConditions:")
        for cond in snapshot.conditions:
            lines.append(f"- {cond.display_name} (status: {cond.status})")

    if snapshot.medications:
        lines.append("\nMedications:")
        for med in snapshot.medications:
            dosage = f" ({med.dosage})" if med.dosage else ""
            lines.append(f"- {med.name}{dosage}")

    if snapshot.observations:
        lines.append("\nRecent Lab Values:")
        for code, obs in snapshot.observations.items():
            unit = f" {obs.unit}" if obs.unit else ""
            lines.append(f"- {obs.display_name or code}: {_value_text(obs)}{unit}")

    return "\n".join(lines)
