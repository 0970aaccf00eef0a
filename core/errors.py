"""
Domain errors raised by the store layer and translated by the routes.
"""
from __future__ import annotations


class QuoteDeskError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400


class ValidationError(QuoteDeskError):
    status_code = 400


class QuoteNotFound(QuoteDeskError):
    status_code = 404


class PartNotFound(QuoteDeskError):
    status_code = 404


class PartsRuleNotFound(QuoteDeskError):
    status_code = 404


class DeliveryNotFound(QuoteDeskError):
    status_code = 404


class InvalidTransition(QuoteDeskError):
    status_code = 409


class DuplicatePartsRule(QuoteDeskError):
    status_code = 409


class DuplicateUser(QuoteDeskError):
    status_code = 409


__all__ = [
    "QuoteDeskError",
    "ValidationError",
    "QuoteNotFound",
    "PartNotFound",
    "PartsRuleNotFound",
    "DeliveryNotFound",
    "InvalidTransition",
    "DuplicatePartsRule",
    "DuplicateUser",
]
