"""
Domain errors for the onboarding API.

Each error carries the HTTP status and machine-readable code the API layer
renders as ``{"error": {"code": ..., "message": ...}}``.
"""


class OnboardingError(Exception):
    status_code = 400
    code = "onboarding_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(OnboardingError):
    status_code = 404
    code = "not_found"


class InvalidTransition(OnboardingError):
    code = "invalid_transition"


class StageMismatch(OnboardingError):
    code = "stage_mismatch"


class OnboardingLocked(OnboardingError):
    code = "onboarding_locked"


class ActivationNotAllowed(OnboardingError):
    code = "activation_not_allowed"


class ReviewReasonRequired(OnboardingError):
    code = "review_reason_required"


class InvalidReviewTarget(OnboardingError):
    code = "invalid_review_target"


class InvalidUpload(OnboardingError):
    code = "invalid_upload"


class ComplianceIncomplete(OnboardingError):
    code = "compliance_incomplete"


class PaymentStateError(OnboardingError):
    code = "payment_state_error"


class DuplicateRequirement(OnboardingError):
    status_code = 409
    code = "duplicate_requirement"


class InvalidSignature(OnboardingError):
    status_code = 401
    code = "invalid_signature"


class PaymentProviderError(OnboardingError):
    status_code = 502
    code = "payment_provider_error"


class StorageNotConfigured(OnboardingError):
    status_code = 503
    code = "storage_not_configured"
