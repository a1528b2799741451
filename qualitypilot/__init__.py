"""
QualityPilot - step execution engine for AI-authored browser tests.
"""

__version__ = "0.1.0"
