"""Policy errors – raised at the storage and validation boundary, never by evaluation."""

from __future__ import annotations


class PolicyError(Exception):
    """Base class for policy errors."""


class PolicyValidationError(PolicyError, ValueError):
    """Policy data is malformed or violates a storage rule."""


class PolicyNotFoundError(PolicyError, LookupError):
    def __init__(self, policy_id: str) -> None:
        super().__init__(f"Policy not found: {policy_id}")
        self.policy_id = policy_id


class SystemPolicyProtectionError(PolicyError):
    def __init__(self, policy_id: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} system policy: {policy_id}")
        self.policy_id = policy_id
        self.operation = operation
