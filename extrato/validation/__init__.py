"""Validation of extracted candidate batches."""

from extrato.validation.validator import CandidateValidator

__all__ = ["CandidateValidator"]
