"""
Assertion evaluation for QualityPilot.
"""

from qualitypilot.evaluation.assertions import AssertionEvaluator

__all__ = [
    "AssertionEvaluator",
]
