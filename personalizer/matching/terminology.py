"""
Curated Terminology Tables

Static mappings used to recognise cardiometabolic biomarkers, conditions
and medications in a normalized patient record:
- biomarker names -> LOINC codes
- condition classes -> SNOMED CT codes, ICD-10 codes, synonym terms, parents
- medication classes -> RxNorm codes, generic and brand names
- clinical status SNOMED codes -> status tokens

The tables are built once at import and shared read-only.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


# =============================================================================
# CODE CONSTANTS
# =============================================================================

class LOINC:
    """Common LOINC codes for biomarkers."""
    LDL = "18262-6"
    HDL = "2085-9"
    TOTAL_CHOLESTEROL = "2093-3"
    TRIGLYCERIDES = "2571-8"
    NON_HDL_CHOLESTEROL = "43396-1"
    APOLIPOPROTEIN_B = "1884-6"
    LIPOPROTEIN_A = "10835-7"
    VITAMIN_D = "1989-3"          # 25-hydroxyvitamin D total
    VITAMIN_D_25 = "35365-6"      # 25-hydroxyvitamin D3
    HBA1C = "4548-4"
    FASTING_GLUCOSE = "1558-6"
    EGFR = "33914-3"
    CREATININE = "2160-0"
    BUN = "3094-0"
    ALT = "1742-6"
    AST = "1920-8"
    SYSTOLIC_BP = "8480-6"
    DIASTOLIC_BP = "8462-4"
    BMI = "39156-5"
    WEIGHT = "29463-7"
    HEIGHT = "8302-2"


class SNOMED:
    """Common SNOMED CT codes for cardiovascular conditions."""
    MYOCARDIAL_INFARCTION = "22298006"
    STROKE = "230690007"
    TYPE_2_DIABETES = "44054006"
    HYPERTENSION = "38341003"
    HEART_FAILURE = "84114007"
    ATRIAL_FIBRILLATION = "49436004"
    CORONARY_ARTERY_DISEASE = "53741008"
    PERIPHERAL_ARTERY_DISEASE = "840580004"
    CHRONIC_KIDNEY_DISEASE = "709044004"
    HYPERLIPIDEMIA = "55822004"


# =============================================================================
# CLASS DEFINITIONS
# =============================================================================

@dataclass(frozen=True)
class ConditionClass:
    """
    One clinical concept as a bucket of equivalent codes and terms.

    alternate_codes are ICD-10 and match as prefixes ("I25" covers "I25.110").
    parents name broader classes that also satisfy this one.
    """
    standard_codes: Tuple[str, ...] = ()
    alternate_codes: Tuple[str, ...] = ()
    terms: Tuple[str, ...] = ()
    parents: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MedicationClass:
    """A drug class: RxNorm ingredient codes plus generic and brand names."""
    standard_codes: Tuple[str, ...] = ()
    terms: Tuple[str, ...] = ()


STATIN_RXNORM = (
    "83367",   # Atorvastatin
    "301542",  # Rosuvastatin
    "36567",   # Simvastatin
    "42463",   # Pravastatin
    "6472",    # Lovastatin
    "41127",   # Fluvastatin
    "861634",  # Pitavastatin
)

STATIN_TERMS = (
    "atorvastatin", "rosuvastatin", "simvastatin", "pravastatin",
    "lovastatin", "fluvastatin", "pitavastatin",
    "lipitor", "crestor", "zocor", "pravachol", "mevacor", "lescol", "livalo",
    "statin",
)


@dataclass(frozen=True)
class TerminologyTables:
    """All curated lookups in one immutable bundle."""

    # Biomarker name (lowercase) -> LOINC codes in priority order
    biomarker_codes: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: {
        "ldl": (LOINC.LDL,),
        "ldl-c": (LOINC.LDL,),
        "ldl cholesterol": (LOINC.LDL,),
        "hdl": (LOINC.HDL,),
        "hdl-c": (LOINC.HDL,),
        "hdl cholesterol": (LOINC.HDL,),
        "total cholesterol": (LOINC.TOTAL_CHOLESTEROL,),
        "cholesterol": (LOINC.TOTAL_CHOLESTEROL,),
        "triglycerides": (LOINC.TRIGLYCERIDES,),
        "non-hdl cholesterol": (LOINC.NON_HDL_CHOLESTEROL,),
        "non-hdl": (LOINC.NON_HDL_CHOLESTEROL,),
        "apolipoprotein b": (LOINC.APOLIPOPROTEIN_B,),
        "apob": (LOINC.APOLIPOPROTEIN_B,),
        "apo b": (LOINC.APOLIPOPROTEIN_B,),
        "lipoprotein(a)": (LOINC.LIPOPROTEIN_A,),
        "lp(a)": (LOINC.LIPOPROTEIN_A,),
        "vitamin d": (LOINC.VITAMIN_D, LOINC.VITAMIN_D_25),
        "25-hydroxyvitamin d": (LOINC.VITAMIN_D, LOINC.VITAMIN_D_25),
        "25-oh vitamin d": (LOINC.VITAMIN_D, LOINC.VITAMIN_D_25),
        "hba1c": (LOINC.HBA1C,),
        "hemoglobin a1c": (LOINC.HBA1C,),
        "glycated hemoglobin": (LOINC.HBA1C,),
        "fasting glucose": (LOINC.FASTING_GLUCOSE,),
        "blood glucose": (LOINC.FASTING_GLUCOSE,),
        "egfr": (LOINC.EGFR,),
        "creatinine": (LOINC.CREATININE,),
        "bun": (LOINC.BUN,),
        "alt": (LOINC.ALT,),
        "ast": (LOINC.AST,),
        "systolic blood pressure": (LOINC.SYSTOLIC_BP,),
        "systolic bp": (LOINC.SYSTOLIC_BP,),
        "diastolic blood pressure": (LOINC.DIASTOLIC_BP,),
        "diastolic bp": (LOINC.DIASTOLIC_BP,),
        "bmi": (LOINC.BMI,),
        "body mass index": (LOINC.BMI,),
    })

    conditions: Mapping[str, ConditionClass] = field(default_factory=lambda: {
        "prior myocardial infarction": ConditionClass(
            standard_codes=("22298006", "399211009", "401314000", "57054005"),
            alternate_codes=("I21", "I22", "I25.2", "Z86.79"),
            terms=("myocardial infarction", "heart attack", "mi", "stemi", "nstemi",
                   "prior mi", "history of mi", "acute mi"),
            parents=("atherosclerotic cardiovascular disease", "coronary artery disease",
                     "cardiovascular disease"),
        ),
        "prior stroke": ConditionClass(
            standard_codes=("230690007", "266257000", "399261000", "422504002"),
            alternate_codes=("I63", "I64", "Z86.73"),
            terms=("stroke", "cva", "cerebrovascular accident", "tia",
                   "transient ischemic attack", "prior stroke", "history of stroke"),
            parents=("atherosclerotic cardiovascular disease", "cardiovascular disease"),
        ),
        "peripheral artery disease": ConditionClass(
            standard_codes=("400047006", "64156001", "233970002"),
            alternate_codes=("I70.2", "I73", "I73.9"),
            terms=("peripheral artery disease", "pad", "peripheral vascular disease",
                   "pvd", "claudication"),
            parents=("atherosclerotic cardiovascular disease", "cardiovascular disease"),
        ),
        "type 2 diabetes": ConditionClass(
            standard_codes=("44054006",),
            alternate_codes=("E11",),
            terms=("type 2 diabetes", "t2dm", "diabetes mellitus type 2",
                   "type ii diabetes", "dm2"),
        ),
        "chronic kidney disease": ConditionClass(
            standard_codes=("709044004", "431855005", "431856006", "431857002", "433146000"),
            alternate_codes=("N18", "N18.1", "N18.2", "N18.3", "N18.4", "N18.5", "N18.6", "N18.9"),
            terms=("chronic kidney disease", "ckd", "renal insufficiency", "kidney failure"),
        ),
        "hyperlipidemia": ConditionClass(
            standard_codes=("55822004", "398036000", "13644009"),
            alternate_codes=("E78", "E78.0", "E78.1", "E78.2", "E78.4", "E78.5"),
            terms=("hyperlipidemia", "dyslipidemia", "high cholesterol",
                   "hypercholesterolemia", "hypertriglyceridemia"),
        ),
        "atherosclerotic cardiovascular disease": ConditionClass(
            standard_codes=(
                "53741008",          # Coronary artery disease
                "443502000",         # Coronary atherosclerosis
                "285151000119108",   # CAD of autologous bypass graft
                "429673002",         # CAD involving coronary bypass graft
                "414545008",         # Ischemic heart disease
                "22298006",          # Myocardial infarction
                "57054005",          # Acute myocardial infarction
                "230690007",         # Stroke / CVA
                "266257000",         # TIA
                "399211009",         # History of MI
                "399261000",         # History of CVA
                "400047006",         # Peripheral vascular disease
                "64156001",          # Thrombophlebitis
                "233970002",         # Coronary artery bypass graft
                "428752002",         # History of CABG
                "429559004",         # History of PCI
                "413838009",         # Chronic ischemic heart disease
                "194828000",         # Angina
                "25106000",          # Acute coronary syndrome
            ),
            alternate_codes=(
                "I25", "I25.1", "I25.10", "I25.11", "I25.110", "I25.111", "I25.118", "I25.119",
                "I21", "I21.0", "I21.1", "I21.2", "I21.3", "I21.4", "I21.9",
                "I22",
                "I63", "I63.0", "I63.1", "I63.2", "I63.3", "I63.4", "I63.5", "I63.9",
                "I65", "I66",
                "I70", "I70.2", "I70.20", "I70.21", "I70.22", "I70.23", "I70.24", "I70.25",
                "I73", "I73.9",
                "Z95.1",    # Presence of CABG
                "Z95.5",    # Presence of coronary stent
                "Z86.73",   # History of TIA
                "Z86.74",   # History of sudden cardiac arrest
            ),
            terms=(
                "coronary artery disease", "cad", "coronary heart disease", "chd",
                "coronary atherosclerosis", "atherosclerotic heart disease",
                "atherosclerotic cardiovascular",
                "myocardial infarction", "mi", "heart attack",
                "stroke", "cerebrovascular accident", "cva", "tia", "transient ischemic attack",
                "peripheral artery disease", "pad", "peripheral vascular disease", "pvd",
                "carotid stenosis", "carotid artery disease",
                "ascvd", "ischemic heart disease", "angina", "acute coronary syndrome",
                "stemi", "nstemi", "unstable angina", "cabg", "bypass", "stent", "pci",
                "coronary artery bypass", "angioplasty", "ptca",
            ),
        ),
        "cardiovascular disease": ConditionClass(
            standard_codes=("53741008", "84114007", "49436004", "22298006", "230690007"),
            alternate_codes=("I25", "I50", "I48", "I21", "I63"),
            terms=("coronary artery disease", "heart disease", "heart failure",
                   "atrial fibrillation", "myocardial infarction", "stroke"),
        ),
        "diabetes": ConditionClass(
            standard_codes=("44054006", "46635009", "73211009"),
            alternate_codes=("E10", "E11", "E13"),
            terms=("diabetes mellitus", "type 2 diabetes", "type 1 diabetes",
                   "t2dm", "t1dm", "diabetic"),
        ),
        "hypertension": ConditionClass(
            standard_codes=("38341003", "59621000"),
            alternate_codes=("I10", "I11", "I12", "I13", "I15"),
            terms=("hypertension", "high blood pressure", "htn", "essential hypertension"),
        ),
        "heart failure": ConditionClass(
            standard_codes=("84114007", "441481004", "443253003", "446221000"),
            alternate_codes=("I50", "I50.1", "I50.2", "I50.3", "I50.4", "I50.9"),
            terms=("heart failure", "hf", "chf", "congestive heart failure", "hfref", "hfpef"),
        ),
    })

    medications: Mapping[str, MedicationClass] = field(default_factory=lambda: {
        # atorvastatin 40-80mg, rosuvastatin 20-40mg
        "high-intensity statin": MedicationClass(
            standard_codes=("83367", "301542"),
            terms=("atorvastatin", "rosuvastatin", "lipitor", "crestor"),
        ),
        "ezetimibe": MedicationClass(
            standard_codes=("341248",),
            terms=("ezetimibe", "zetia"),
        ),
        "pcsk9 inhibitor": MedicationClass(
            standard_codes=("1657974", "1659149"),
            terms=("evolocumab", "alirocumab", "repatha", "praluent", "pcsk9"),
        ),
        "statin": MedicationClass(standard_codes=STATIN_RXNORM, terms=STATIN_TERMS),
        "statin therapy": MedicationClass(standard_codes=STATIN_RXNORM, terms=STATIN_TERMS),
        "ace inhibitor": MedicationClass(
            standard_codes=("29046", "3827", "35296", "18867", "1998", "50166", "35208", "54552", "38454"),
            terms=("lisinopril", "enalapril", "ramipril", "benazepril", "captopril",
                   "fosinopril", "quinapril", "perindopril", "trandolapril",
                   "prinivil", "zestril", "vasotec", "altace", "lotensin", "capoten"),
        ),
        "arb": MedicationClass(
            standard_codes=("52175", "69749", "83515", "321064", "73494", "83818", "1091643"),
            terms=("losartan", "valsartan", "irbesartan", "olmesartan", "telmisartan",
                   "candesartan", "azilsartan",
                   "cozaar", "diovan", "avapro", "benicar", "micardis", "atacand"),
        ),
        "beta blocker": MedicationClass(
            standard_codes=("6918", "20352", "19484", "1202", "8787", "31555", "6185", "7226"),
            terms=("metoprolol", "carvedilol", "bisoprolol", "atenolol", "propranolol",
                   "nebivolol", "labetalol", "nadolol",
                   "lopressor", "toprol", "coreg", "zebeta", "tenormin", "inderal", "bystolic"),
        ),
        "anticoagulant": MedicationClass(
            standard_codes=("11289", "1364430", "1232082", "1037045", "1599538"),
            terms=("warfarin", "apixaban", "rivaroxaban", "dabigatran", "edoxaban",
                   "coumadin", "eliquis", "xarelto", "pradaxa", "savaysa",
                   "heparin", "enoxaparin", "lovenox"),
        ),
        "antiplatelet": MedicationClass(
            standard_codes=("1191", "32968", "613391", "1116632"),
            terms=("aspirin", "clopidogrel", "prasugrel", "ticagrelor",
                   "plavix", "effient", "brilinta"),
        ),
        "sglt2 inhibitor": MedicationClass(
            standard_codes=("1545653", "1488564", "1373458", "1992684"),
            terms=("empagliflozin", "dapagliflozin", "canagliflozin", "ertugliflozin",
                   "jardiance", "farxiga", "invokana", "steglatro", "sglt2"),
        ),
        "glp1 agonist": MedicationClass(
            standard_codes=("1991302", "475968", "1534763", "60548", "2395779"),
            terms=("semaglutide", "liraglutide", "dulaglutide", "exenatide", "tirzepatide",
                   "ozempic", "wegovy", "victoza", "trulicity", "byetta", "bydureon",
                   "mounjaro", "glp-1", "glp1"),
        ),
        "metformin": MedicationClass(
            standard_codes=("6809",),
            terms=("metformin", "glucophage", "glumetza", "fortamet", "riomet"),
        ),
        "insulin": MedicationClass(
            standard_codes=("5856",),
            terms=("insulin", "lantus", "basaglar", "toujeo", "levemir", "tresiba",
                   "novolog", "humalog", "apidra", "fiasp", "admelog", "humulin", "novolin"),
        ),
    })

    # Clinical status tokens recognised directly
    status_vocabulary: Tuple[str, ...] = (
        "active", "resolved", "recurrence", "inactive", "remission", "relapse",
    )

    # SNOMED CT codes some bundles use in Condition.clinicalStatus
    status_codes: Mapping[str, str] = field(default_factory=lambda: {
        "55561003": "active",
        "73425007": "inactive",
        "413322009": "resolved",
        "24484000": "recurrence",
        "723506003": "relapse",
        "277022003": "remission",
    })

    def __post_init__(self):
        # Frozen only stops rebinding; the tables themselves must be read-only too
        for name in ("biomarker_codes", "conditions", "medications", "status_codes"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def condition_class(self, name: str) -> Optional[ConditionClass]:
        return self.conditions.get(name)

    def medication_class(self, name: str) -> Optional[MedicationClass]:
        return self.medications.get(name)

    def codes_for_biomarker(self, name: str) -> Tuple[str, ...]:
        return self.biomarker_codes.get(name, ())


# Condition statuses kept in a snapshot
RETAINED_CONDITION_STATUSES = frozenset({"active", "resolved", "recurrence"})

# Medication statuses kept in a snapshot, per resource kind
RETAINED_STATEMENT_STATUSES = frozenset({"active", "intended", "on-hold"})
RETAINED_REQUEST_STATUSES = frozenset({"active", "on-hold"})


# Global instance
TERMINOLOGY = TerminologyTables()
