"""
EHR literature personalizer.

Normalizes a patient's FHIR bundle and decides whether a parsed
research paper applies to that patient.
"""

__version__ = "0.1.0"
