"""
DecisionGate Exceptions.

Provider failures (unavailable, timeout, error) are control flow inside the
router's fallback loop and never reach callers on their own; only
AllProvidersFailed escapes ModelRouter.call(). Validation failures are not
exceptions at all; see decisiongate.validation.schemas.ProposalValidationFailed.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Pipeline error codes."""

    INTERNAL_ERROR = "DG1000"

    # Inference providers (2xxx)
    PROVIDER_UNAVAILABLE = "DG2000"
    PROVIDER_TIMEOUT = "DG2001"
    PROVIDER_ERROR = "DG2002"
    ALL_PROVIDERS_FAILED = "DG2003"
    RESPONSE_NOT_JSON = "DG2004"

    # Synthesis (3xxx)
    SYNTHESIS_INPUT_INSUFFICIENT = "DG3000"


class DecisionGateError(Exception):
    """Base exception for the decision pipeline."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# PROVIDER FAILURES
# ============================================================================


class ProviderFailure(DecisionGateError):
    """A single provider attempt failed. Caught by the router's fallback loop."""

    def __init__(self, provider: str, message: str, code: ErrorCode):
        self.provider = provider
        super().__init__(message, code=code, details={"provider": provider})


class ProviderUnavailable(ProviderFailure):
    """Provider has no credentials configured."""

    def __init__(self, provider: str):
        super().__init__(
            provider,
            f"{provider} client not configured (missing API key)",
            ErrorCode.PROVIDER_UNAVAILABLE,
        )


class ProviderTimeout(ProviderFailure):
    """Provider did not answer within the call's timeout."""

    def __init__(self, provider: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(
            provider,
            f"{provider} timeout after {timeout_ms}ms",
            ErrorCode.PROVIDER_TIMEOUT,
        )


class ProviderError(ProviderFailure):
    """Malformed response or failed transport."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(provider, message, ErrorCode.PROVIDER_ERROR)
        if status_code is not None:
            self.details["status_code"] = status_code


class AllProvidersFailed(DecisionGateError):
    """Every entry of the fallback chain failed."""

    def __init__(self, last_error: Optional[Exception], attempts: List[Dict[str, Any]]):
        self.last_error = last_error
        self.attempts = attempts
        message = "All AI providers failed"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(
            message,
            code=ErrorCode.ALL_PROVIDERS_FAILED,
            details={"attempts": attempts},
        )


class ResponseNotJSON(DecisionGateError):
    """Provider content could not be parsed as JSON, even from a fenced block."""

    def __init__(self, content: str):
        self.content_preview = content[:200]
        super().__init__(
            f"Failed to parse AI response as JSON: {self.content_preview}",
            code=ErrorCode.RESPONSE_NOT_JSON,
        )


# ============================================================================
# SYNTHESIS
# ============================================================================


class SynthesisInputInsufficient(DecisionGateError):
    """No signal domain is available, so no verdict can be computed."""

    def __init__(self, subject_id: Optional[str] = None):
        super().__init__(
            "No signal domains available for synthesis",
            code=ErrorCode.SYNTHESIS_INPUT_INSUFFICIENT,
            details={"subject_id": subject_id} if subject_id else None,
        )
