"""Medication safety rule engine.

Clinical decision support core that screens a proposed prescription against a
patient's allergies, conditions, concurrent medications, pregnancy, renal and
hepatic status, age and weight.

Note: This is a clinical decision support tool and should not replace
clinical judgment. Always consult current prescribing information.
"""

__version__ = "0.1.0"
