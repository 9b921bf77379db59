"""
Onboarding stage graph.

The legal transitions are a fixed adjacency table; every stage write goes
through ``can_transition``. ACTIVE and COMPLETED have no successors.
REJECTED only re-enters the document collection path.
"""

from app.models.enums import OnboardingStage

S = OnboardingStage

STAGE_TRANSITIONS: dict[OnboardingStage, frozenset[OnboardingStage]] = {
    S.ADMIN_CREATED: frozenset({S.PAYMENT_PENDING, S.PENDING_DOCUMENTS, S.REJECTED}),
    S.PAYMENT_PENDING: frozenset({S.PAYMENT_CONFIRMED, S.REJECTED}),
    S.PENDING_DOCUMENTS: frozenset({S.DOCUMENTS_SUBMITTED, S.REJECTED}),
    S.DOCUMENTS_SUBMITTED: frozenset({S.UNDER_REVIEW, S.PENDING_DOCUMENTS}),
    S.UNDER_REVIEW: frozenset(
        {S.COMPLETED, S.REJECTED, S.DOCUMENTS_SUBMITTED, S.PAYMENT_CONFIRMED}
    ),
    S.PAYMENT_CONFIRMED: frozenset({S.KYC_IN_PROGRESS}),
    S.KYC_IN_PROGRESS: frozenset({S.KYC_REVIEW, S.DOCUMENTS_SUBMITTED, S.REJECTED}),
    S.KYC_REVIEW: frozenset({S.AGREEMENT_DRAFT_SHARED, S.KYC_IN_PROGRESS, S.REJECTED}),
    S.AGREEMENT_DRAFT_SHARED: frozenset({S.SIGNED_AGREEMENT_RECEIVED, S.REJECTED}),
    S.SIGNED_AGREEMENT_RECEIVED: frozenset({S.FINAL_AGREEMENT_SHARED, S.REJECTED}),
    S.FINAL_AGREEMENT_SHARED: frozenset({S.ACTIVE, S.REJECTED}),
    S.ACTIVE: frozenset(),
    S.COMPLETED: frozenset(),
    S.REJECTED: frozenset({S.PENDING_DOCUMENTS}),
}

# Main onboarding path, in order. Used for "at or past" checks by the
# idempotent lifecycle events.
ONBOARDING_PATH: tuple[OnboardingStage, ...] = (
    S.PAYMENT_PENDING,
    S.PAYMENT_CONFIRMED,
    S.KYC_IN_PROGRESS,
    S.KYC_REVIEW,
    S.AGREEMENT_DRAFT_SHARED,
    S.SIGNED_AGREEMENT_RECEIVED,
    S.FINAL_AGREEMENT_SHARED,
    S.ACTIVE,
)

# Stages in which a client may upload KYC documents (i.e. payment is done)
KYC_UPLOAD_STAGES = frozenset({S.PAYMENT_CONFIRMED, S.KYC_IN_PROGRESS, S.KYC_REVIEW})

# Stages in which an admin may review KYC documents
KYC_REVIEW_STAGES = frozenset({S.KYC_IN_PROGRESS, S.KYC_REVIEW})

STAGE_LABELS: dict[OnboardingStage, str] = {
    S.ADMIN_CREATED: "Created by admin",
    S.PAYMENT_PENDING: "Payment pending",
    S.PENDING_DOCUMENTS: "Pending documents",
    S.DOCUMENTS_SUBMITTED: "Documents submitted",
    S.UNDER_REVIEW: "Under review",
    S.PAYMENT_CONFIRMED: "Payment confirmed",
    S.KYC_IN_PROGRESS: "KYC in progress",
    S.KYC_REVIEW: "KYC review",
    S.AGREEMENT_DRAFT_SHARED: "Agreement draft shared",
    S.SIGNED_AGREEMENT_RECEIVED: "Signed agreement received",
    S.FINAL_AGREEMENT_SHARED: "Final agreement shared",
    S.ACTIVE: "Active",
    S.COMPLETED: "Completed",
    S.REJECTED: "Rejected",
}


def successors(stage: OnboardingStage) -> frozenset[OnboardingStage]:
    return STAGE_TRANSITIONS[OnboardingStage(stage)]


def can_transition(current: OnboardingStage, target: OnboardingStage) -> bool:
    return OnboardingStage(target) in successors(current)


def is_terminal(stage: OnboardingStage) -> bool:
    return not successors(stage)


def is_at_or_past(current: OnboardingStage, target: OnboardingStage) -> bool:
    """True if ``current`` is ``target`` or later on the main onboarding path.

    Stages off the path (REJECTED, UNDER_REVIEW, ...) are never "past" anything.
    """
    current = OnboardingStage(current)
    target = OnboardingStage(target)
    if current == target:
        return True
    if current not in ONBOARDING_PATH or target not in ONBOARDING_PATH:
        return False
    return ONBOARDING_PATH.index(current) >= ONBOARDING_PATH.index(target)


def stage_label(stage: OnboardingStage) -> str:
    return STAGE_LABELS[OnboardingStage(stage)]
