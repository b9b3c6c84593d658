"""Exceptions raised by the volatility report pipeline."""


class AnalysisError(Exception):
    """Base class for pipeline failures"""


class DataUnavailable(AnalysisError):
    """Price data could not be fetched or failed validation"""


class InsufficientData(AnalysisError, ValueError):
    """Series too short for the requested transform, split or fit"""


class FitFailure(AnalysisError):
    """A single model specification failed to converge"""

    def __init__(self, label: str, reason: str):
        super().__init__(f"{label}: {reason}")
        self.label = label
        self.reason = reason


class NoConvergedModel(AnalysisError):
    """Every candidate model failed, nothing left to forecast with"""
