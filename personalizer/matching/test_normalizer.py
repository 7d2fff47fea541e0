"""
Tests for the FHIR record normalizer

Run with: python -m pytest personalizer/matching/test_normalizer.py -v
"""

from datetime import date

import pytest

from personalizer.matching.normalizer import (
    UNKNOWN_MEDICATION,
    RecordNormalizer,
    calculate_age,
    iter_resources,
    normalize,
    parse_fhir_date,
)


NOW = date(2025, 1, 15)

LOINC_SYSTEM = "http://loinc.org"
SNOMED_SYSTEM = "http://snomed.info/sct"
ICD10_SYSTEM = "http://hl7.org/fhir/sid/icd-10-cm"
RXNORM_SYSTEM = "http://www.nlm.nih.gov/research/umls/rxnorm"
STATUS_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"


def patient(birth_date="1960-03-10", gender="male"):
    return {
        "resourceType": "Patient",
        "id": "p1",
        "birthDate": birth_date,
        "gender": gender,
        "name": [{"given": ["John"], "family": "Smith"}],
    }


def observation(code, display, value, unit, when):
    return {
        "resourceType": "Observation",
        "code": {"coding": [{"system": LOINC_SYSTEM, "code": code, "display": display}]},
        "effectiveDateTime": when,
        "valueQuantity": {"value": value, "unit": unit},
    }


def condition(display, snomed=None, icd=None, status="active", status_code=None, status_text=None):
    coding = []
    if snomed:
        coding.append({"system": SNOMED_SYSTEM, "code": snomed, "display": display})
    if icd:
        coding.append({"system": ICD10_SYSTEM, "code": icd, "display": display})
    resource = {"resourceType": "Condition", "code": {"coding": coding, "text": display}}
    if status_code or status:
        resource["clinicalStatus"] = {"coding": [{"system": STATUS_SYSTEM, "code": status_code or status}]}
    if status_text:
        resource["clinicalStatus"] = {"text": status_text}
    return resource


def bundle(*resources):
    return {"resourceType": "Bundle", "entry": [{"resource": r} for r in resources]}


def test_normalize_is_idempotent():
    """The same bundle always yields the same snapshot."""
    print("\n" + "="*60)
    print("TEST: Idempotence")
    print("="*60)

    raw = bundle(
        patient(),
        observation("18262-6", "LDL Cholesterol", 130, "mg/dL", "2024-03-01"),
        condition("Hypertension", snomed="38341003"),
    )

    first = normalize(raw, now=NOW)
    second = normalize(raw, now=NOW)
    print(f"Snapshot: age={first.age}, observations={list(first.observations)}")
    assert first == second


def test_demographics():
    snapshot = normalize(bundle(patient(birth_date="1960-03-10", gender="Female")), now=NOW)

    assert snapshot.age == 64
    assert snapshot.sex == "female"
    assert snapshot.name == "John Smith"
    assert snapshot.birth_date == "1960-03-10"


def test_missing_patient_gives_unknown_demographics():
    snapshot = normalize(bundle(condition("Hypertension", snomed="38341003")), now=NOW)

    assert snapshot.age is None
    assert snapshot.sex == "unknown"
    assert len(snapshot.conditions) == 1


def test_age_uses_birthday_anniversary():
    print("\n" + "="*60)
    print("TEST: Age Anniversary")
    print("="*60)

    assert calculate_age("1980-06-15", date(2025, 6, 14)) == 44
    assert calculate_age("1980-06-15", date(2025, 6, 15)) == 45
    assert calculate_age("1980-06-15", date(2025, 12, 31)) == 45
    assert calculate_age("not-a-date", NOW) is None
    assert calculate_age(None, NOW) is None

    print("\n[PASS] Age anniversary tests passed!")


def test_parse_fhir_date_variants():
    assert parse_fhir_date("2024-05-01").year == 2024
    assert parse_fhir_date("2024-05-01T10:30:00Z").hour == 10
    assert parse_fhir_date("2024-05").month == 5
    assert parse_fhir_date("2024").year == 2024
    assert parse_fhir_date("yesterday") is None
    assert parse_fhir_date("") is None


def test_most_recent_observation_per_code():
    """Only the latest value per LOINC code is kept."""
    print("\n" + "="*60)
    print("TEST: Observation Deduplication")
    print("="*60)

    raw = bundle(
        observation("18262-6", "LDL Cholesterol", 160, "mg/dL", "2022-01-10"),
        observation("18262-6", "LDL Cholesterol", 95, "mg/dL", "2024-06-01T08:00:00Z"),
        observation("18262-6", "LDL Cholesterol", 120, "mg/dL", "2023-02-20"),
        observation("2085-9", "HDL Cholesterol", 48.5, "mg/dL", "2024-06-01"),
    )
    snapshot = normalize(raw, now=NOW)

    ldl = snapshot.observations["18262-6"]
    print(f"LDL kept: {ldl.value} {ldl.unit} on {ldl.observed_date}")
    assert len(snapshot.observations) == 2
    assert ldl.value == 95
    assert ldl.observed_date == "2024-06-01T08:00:00Z"
    assert ldl.display_name == "LDL Cholesterol"
    assert snapshot.observations["2085-9"].value == 48.5


def test_observations_without_date_or_code_are_dropped():
    undated = observation("18262-6", "LDL Cholesterol", 70, "mg/dL", None)
    bad_date = observation("18262-6", "LDL Cholesterol", 80, "mg/dL", "sometime last year")
    uncoded = {
        "resourceType": "Observation",
        "code": {"text": "Mystery lab"},
        "effectiveDateTime": "2024-01-01",
        "valueQuantity": {"value": 1},
    }
    snapshot = normalize(bundle(undated, bad_date, uncoded), now=NOW)

    assert snapshot.observations == {}


def test_observation_value_kinds():
    raw = bundle(
        {
            "resourceType": "Observation",
            "code": {"coding": [{"code": "X-1", "display": "Genotype"}]},
            "effectiveDateTime": "2024-01-01",
            "valueString": "APOE e3/e4",
        },
        {
            "resourceType": "Observation",
            "code": {"coding": [{"code": "X-2", "display": "Smoker"}]},
            "effectiveDateTime": "2024-01-01",
            "valueBoolean": False,
        },
        {
            "resourceType": "Observation",
            "code": {"coding": [{"code": "X-3", "display": "Imaging"}]},
            "effectiveDateTime": "2024-01-01",
            "valueCodeableConcept": {"coding": [{"code": "abc"}]},
        },
    )
    snapshot = normalize(raw, now=NOW)

    assert snapshot.observations["X-1"].value == "APOE e3/e4"
    assert snapshot.observations["X-2"].value == "false"
    assert snapshot.observations["X-3"].value == "See report"


def test_condition_status_filtering():
    """Active, resolved and recurrence are kept whether coded, SNOMED or text."""
    print("\n" + "="*60)
    print("TEST: Condition Status Filtering")
    print("="*60)

    raw = bundle(
        condition("Hypertension", snomed="38341003", status="active"),
        condition("Old fracture", status=None, status_code="413322009"),
        condition("Angina", status=None, status_text="Recurrence"),
        condition("Asthma", status="inactive"),
        condition("Eczema", status=None, status_code="277022003"),
        condition("Mystery", status=None),
    )
    snapshot = normalize(raw, now=NOW)

    kept = {c.display_name: c.status for c in snapshot.conditions}
    print(f"Kept conditions: {kept}")
    assert kept == {
        "Hypertension": "active",
        "Old fracture": "resolved",
        "Angina": "recurrence",
    }


def test_condition_codes_and_onset():
    raw = bundle({
        "resourceType": "Condition",
        "clinicalStatus": {"coding": [{"code": "active"}]},
        "code": {
            "coding": [
                {"system": SNOMED_SYSTEM, "code": "53741008", "display": "Coronary arteriosclerosis"},
                {"system": ICD10_SYSTEM, "code": "I25.10"},
            ],
        },
        "onsetDateTime": "not a date",
    })
    cond = normalize(raw, now=NOW).conditions[0]

    assert cond.display_name == "Coronary arteriosclerosis"
    assert cond.standard_code == "53741008"
    assert cond.alternate_code == "I25.10"
    assert cond.onset_date is None


def test_medication_status_filtering():
    raw = bundle(
        {
            "resourceType": "MedicationStatement",
            "status": "active",
            "medicationCodeableConcept": {"coding": [{"system": RXNORM_SYSTEM, "code": "83367", "display": "Atorvastatin 40 MG"}]},
            "dosage": [{"text": "40 mg daily"}],
        },
        {
            "resourceType": "MedicationStatement",
            "status": "intended",
            "medicationCodeableConcept": {"text": "Ezetimibe"},
        },
        {
            "resourceType": "MedicationStatement",
            "status": "completed",
            "medicationCodeableConcept": {"text": "Amoxicillin"},
        },
        {
            "resourceType": "MedicationRequest",
            "status": "on-hold",
            "medicationCodeableConcept": {"text": "Metformin 500 MG"},
            "dosageInstruction": [{"doseAndRate": [{"doseQuantity": {"value": 500.0, "unit": "mg"}}]}],
        },
        {
            "resourceType": "MedicationRequest",
            "status": "intended",
            "medicationCodeableConcept": {"text": "Warfarin"},
        },
    )
    snapshot = normalize(raw, now=NOW)

    meds = {m.name: m for m in snapshot.medications}
    assert set(meds) == {"Atorvastatin 40 MG", "Ezetimibe", "Metformin 500 MG"}
    assert meds["Atorvastatin 40 MG"].standard_code == "83367"
    assert meds["Atorvastatin 40 MG"].dosage == "40 mg daily"
    assert meds["Metformin 500 MG"].dosage == "500 mg"


def test_medication_reference_resolution():
    """Names come from the inline concept, else the referenced Medication."""
    print("\n" + "="*60)
    print("TEST: Medication Reference Resolution")
    print("="*60)

    raw = bundle(
        {
            "resourceType": "Medication",
            "id": "med-1",
            "code": {"coding": [{"system": RXNORM_SYSTEM, "code": "301542", "display": "Rosuvastatin 20 MG"}]},
        },
        {
            "resourceType": "MedicationStatement",
            "status": "active",
            "medicationReference": {"reference": "Medication/med-1"},
        },
        {
            "resourceType": "MedicationRequest",
            "status": "active",
            "medicationReference": {"reference": "Medication/missing"},
        },
        {
            "resourceType": "MedicationStatement",
            "status": "active",
            "medicationCodeableConcept": {"text": "Crestor"},
            "medicationReference": {"reference": "med-1"},
        },
    )
    snapshot = normalize(raw, now=NOW)

    names = [m.name for m in snapshot.medications]
    print(f"Resolved names: {names}")
    assert names == ["Rosuvastatin 20 MG", "Crestor", UNKNOWN_MEDICATION]
    # Inline text wins, the reference only fills the missing code
    assert snapshot.medications[1].standard_code == "301542"


def test_malformed_elements_are_dropped():
    raw = bundle(
        patient(),
        {"resourceType": "Observation", "code": "not-a-concept", "effectiveDateTime": "2024-01-01"},
        observation("18262-6", "LDL Cholesterol", "lots", "mg/dL", "2024-01-01"),
        observation("2085-9", "HDL Cholesterol", 55, "mg/dL", "2024-01-01"),
    )
    snapshot = normalize(raw, now=NOW)

    assert list(snapshot.observations) == ["2085-9"]
    assert snapshot.age == 64


def test_bad_name_keeps_patient_demographics():
    print("\n" + "="*60)
    print("TEST: Lenient Patient Parsing")
    print("="*60)

    single_given = patient(birth_date="1960-03-10", gender="female")
    single_given["name"] = [{"given": "John", "family": "Doe"}]
    snapshot = normalize(bundle(single_given), now=NOW)

    print(f"Snapshot: age={snapshot.age}, sex={snapshot.sex}, name={snapshot.name}")
    assert snapshot.age == 64
    assert snapshot.sex == "female"
    assert snapshot.name == "John Doe"

    broken_name = patient(birth_date="1960-03-10", gender="male")
    broken_name["name"] = "John Doe"
    snapshot = normalize(bundle(broken_name), now=NOW)

    assert snapshot.age == 64
    assert snapshot.sex == "male"
    assert snapshot.birth_date == "1960-03-10"


def test_qualified_quantity_is_kept():
    raw = bundle(
        observation("1988-5", "C reactive protein", "<5", "mg/L", "2024-06-01"),
        {
            "resourceType": "Observation",
            "code": {"coding": [{"system": LOINC_SYSTEM, "code": "2160-0", "display": "Creatinine"}]},
            "effectiveDateTime": "2024-06-01",
            "valueQuantity": {"value": 0.4, "comparator": "<=", "unit": "mg/dL"},
        },
    )
    snapshot = normalize(raw, now=NOW)

    crp = snapshot.observations["1988-5"]
    assert crp.value == "<5"
    assert crp.unit == "mg/L"
    assert snapshot.observations["2160-0"].value == "<=0.4"


def test_bad_interpretation_keeps_observation():
    obs = observation("18262-6", "LDL Cholesterol", 150, "mg/dL", "2024-06-01")
    obs["interpretation"] = "high"
    snapshot = normalize(bundle(obs), now=NOW)

    ldl = snapshot.observations["18262-6"]
    assert ldl.value == 150
    assert ldl.interpretation is None


def test_unknown_resource_kinds_are_ignored():
    raw = bundle(
        {"resourceType": "Encounter", "id": "e1"},
        {"resourceType": "Procedure", "id": "x"},
        "not even a mapping",
        patient(),
    )

    assert len(iter_resources(raw)) == 1
    assert normalize(raw, now=NOW).age == 64


def test_accepts_plain_resource_list():
    snapshot = normalize([patient(), condition("Hypertension", snomed="38341003")], now=NOW)

    assert snapshot.age == 64
    assert len(snapshot.conditions) == 1


def test_rejects_non_bundle_input():
    with pytest.raises(TypeError):
        normalize(42, now=NOW)
    with pytest.raises(TypeError):
        normalize("Bundle", now=NOW)


def test_custom_normalizer_instance():
    normalizer = RecordNormalizer()
    snapshot = normalizer.normalize(bundle(patient(birth_date="2000-01-15")), now=NOW)

    assert snapshot.age == 25


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
