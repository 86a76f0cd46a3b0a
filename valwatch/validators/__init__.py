"""Validator monitoring — registry, change detection, alert policy, followers."""

from valwatch.validators.detector import AlertCallback, ChangeDetector
from valwatch.validators.exceptions import PersistenceError, ValidatorStateError
from valwatch.validators.policy import AlertPolicy, PolicyOutcome
from valwatch.validators.registry import ValidatorRegistry
from valwatch.validators.subscriptions import SubscriptionStore

__all__ = [
    "AlertCallback",
    "AlertPolicy",
    "ChangeDetector",
    "PersistenceError",
    "PolicyOutcome",
    "SubscriptionStore",
    "ValidatorRegistry",
    "ValidatorStateError",
]
