"""Validator state exceptions."""

from __future__ import annotations


class ValidatorStateError(Exception):
    """Base exception for validator state errors."""


class PersistenceError(ValidatorStateError):
    """Durable state could not be written."""
