"""Lexical classification of model-service failures.

The upstream SDKs do not surface structured error codes consistently, so
failures are classified by substring match on the error message. Rules are
evaluated top to bottom and the first match wins; a message such as
"500 ... RESOURCE_EXHAUSTED" is therefore Transient, not QuotaExhausted.
"""

from typing import Dict, Sequence, Tuple

from ..models import AgentResponse, ErrorClassification


CLASSIFICATION_RULES: Sequence[Tuple[Tuple[str, ...], ErrorClassification]] = (
    (
        ("500", "INTERNAL", "Service Unavailable", "Deadline Exceeded"),
        ErrorClassification.TRANSIENT,
    ),
    (("429", "RESOURCE_EXHAUSTED"), ErrorClassification.QUOTA_EXHAUSTED),
    (("API_KEY_INVALID", "invalid API key"), ErrorClassification.INVALID_KEY),
)

# Terminal rules re-checked once transient retries have run out; anything
# else still failing at that point is reported as an internal error.
EXHAUSTED_RULES: Sequence[Tuple[Tuple[str, ...], ErrorClassification]] = (
    CLASSIFICATION_RULES[1],
    CLASSIFICATION_RULES[2],
)


REMEDIATION_TEXT: Dict[ErrorClassification, str] = {
    ErrorClassification.MISSING_KEY: (
        "## API Key Missing\n\n"
        "No model API key was found in the environment.\n\n"
        "**To resolve this:**\n"
        "1. Set `API_KEY` (or `GEMINI_API_KEY` / `OPENAI_API_KEY`) for the server.\n"
        "2. Use a key from a project with billing enabled.\n"
        "3. Once set, you can start interacting with Nexus."
    ),
    ErrorClassification.QUOTA_EXHAUSTED: (
        "## Quota Exhausted\n\n"
        "You've reached the rate limit for the current API key.\n\n"
        "**To continue:**\n"
        "1. Switch to a different API key.\n"
        "2. Use a project with billing enabled.\n"
        "3. Try your request again."
    ),
    ErrorClassification.INVALID_KEY: (
        "## Invalid API Key\n\n"
        "The provided API key is invalid or has expired.\n\n"
        "**To fix this:**\n"
        "1. Provide a valid API key from a project with billing enabled.\n"
        "2. Try your request again."
    ),
    ErrorClassification.INTERNAL_ERROR: (
        "## Model Internal Error\n\n"
        "The model API encountered an internal error. This is usually temporary.\n\n"
        "**Suggestions:**\n"
        "1. Wait a few seconds and try again.\n"
        "2. If the problem persists, try switching to a different API key.\n"
        "3. Simplify your request."
    ),
}


def _message(error: BaseException | str) -> str:
    return error if isinstance(error, str) else str(error)


def classify(error: BaseException | str) -> ErrorClassification:
    """Map a raw failure onto the error taxonomy."""
    message = _message(error)
    for markers, classification in CLASSIFICATION_RULES:
        if any(marker in message for marker in markers):
            return classification
    return ErrorClassification.UNCLASSIFIED


def classify_exhausted(error: BaseException | str) -> ErrorClassification:
    """Re-classify a transient failure after the last attempt.

    Quota and invalid-key markers are checked first so that e.g.
    "500 RESOURCE_EXHAUSTED" ends with the quota text; every other exhausted
    transient failure becomes InternalError.
    """
    message = _message(error)
    for markers, classification in EXHAUSTED_RULES:
        if any(marker in message for marker in markers):
            return classification
    return ErrorClassification.INTERNAL_ERROR


def remediation(classification: ErrorClassification) -> AgentResponse | None:
    """Return the fixed user-facing response for a terminal classification.

    Unclassified failures have no remediation and are propagated instead.
    """
    text = REMEDIATION_TEXT.get(classification)
    if text is None:
        return None
    return AgentResponse(text=text, sources=[])
