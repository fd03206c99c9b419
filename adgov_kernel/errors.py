"""Exception taxonomy shared by the kernel components."""


class AdGovError(Exception):
    """Base class for kernel errors."""
    pass


class ValidationError(AdGovError):
    """Malformed caller input. Raised before any pipeline step executes."""
    pass


class ToolExecutionError(AdGovError):
    """An external collaborator call failed. Fatal to the current run."""

    def __init__(self, tool: str, message: str):
        super().__init__(message)
        self.tool = tool
        self.message = message


class HealthBlockedError(AdGovError):
    """Data health is below the can-recommend threshold. A designed early exit."""

    def __init__(self, health_score: float, threshold: float):
        self.health_score = health_score
        self.threshold = threshold
        super().__init__(
            f"Data health too low ({health_score:g}/100). "
            f"Fix data issues before recommendations."
        )


class GuardrailViolation(AdGovError):
    """A hypothesis was vetoed. Local to that hypothesis."""

    def __init__(self, entity_id: str, violations: list):
        self.entity_id = entity_id
        self.violations = violations
        names = ", ".join(v.guardrail for v in violations)
        super().__init__(f"Guardrails blocked action on {entity_id}: {names}")


class RateLimitExceeded(AdGovError):
    def __init__(self, check):
        self.check = check
        super().__init__(check.reason or "Rate limit exceeded")


class InvalidTransitionError(AdGovError):
    """A state machine was asked to make an illegal move."""

    def __init__(self, subject: str, from_state: str, to_state: str):
        self.subject = subject
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal transition for {subject}: {from_state} -> {to_state}"
        )


class SuggestionCapExceeded(AdGovError):
    pass


class LearningIntentRequired(AdGovError):
    pass


class OrbNotFound(AdGovError):
    pass


class RecommendationNotFound(AdGovError):
    pass


class AutoPublishRefused(AdGovError):
    """Publishing must be an explicit user action."""
    pass
