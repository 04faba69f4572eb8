"""
Exception hierarchy for the Client Onboarding Compliance Engine.

Guards that merely block progression (incomplete documentation, unresolved
screening hits) return a GateResult instead of raising. The exceptions below
are reserved for requests the engine must refuse outright.
"""

from typing import Any, Optional


class OnboardingError(Exception):
    """Base exception for all engine errors."""

    code: str = "ONBOARDING_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for API or CLI display."""
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class IllegalTransitionError(OnboardingError):
    """A lifecycle action is not defined for the entity's current status."""

    code = "ILLEGAL_TRANSITION"

    def __init__(self, from_status, action, entity_id: Optional[str] = None):
        self.from_status = from_status
        self.action = action
        self.entity_id = entity_id
        status_value = getattr(from_status, "value", from_status)
        action_value = getattr(action, "value", action)
        super().__init__(
            f"Action '{action_value}' is not permitted from status '{status_value}'",
            {"from_status": status_value, "action": action_value, "entity_id": entity_id},
        )


class DocumentStateError(OnboardingError):
    """A document verification step was requested from the wrong state."""

    code = "DOCUMENT_STATE"

    def __init__(self, doc_id: str, current_status, operation: str):
        self.doc_id = doc_id
        self.current_status = current_status
        self.operation = operation
        status_value = getattr(current_status, "value", current_status)
        super().__init__(
            f"Cannot {operation} document '{doc_id}' while it is {status_value}",
            {"doc_id": doc_id, "status": status_value, "operation": operation},
        )


class StaleEntityError(OnboardingError):
    """A compare-and-swap write lost against a concurrent transition."""

    code = "STALE_ENTITY"

    def __init__(self, entity_id: str, expected_status, actual_status):
        self.entity_id = entity_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Entity '{entity_id}' moved to '{getattr(actual_status, 'value', actual_status)}' "
            f"(expected '{getattr(expected_status, 'value', expected_status)}')",
            {"entity_id": entity_id},
        )


class PolicyConfigError(OnboardingError):
    """The policy document could not be loaded or failed validation."""

    code = "POLICY_CONFIG"
