import pytest

from nexus.agent.errors import (
    REMEDIATION_TEXT,
    classify,
    classify_exhausted,
    remediation,
)
from nexus.models import ErrorClassification


@pytest.mark.parametrize(
    "message",
    [
        "500 Internal Server Error",
        "13 INTERNAL: backend failure",
        "503 Service Unavailable",
        "504 Deadline Exceeded",
    ],
)
def test_transient_messages(message: str) -> None:
    """Upstream internal/unavailable/timeout errors are transient."""
    assert classify(RuntimeError(message)) is ErrorClassification.TRANSIENT


def test_quota_exhausted() -> None:
    """429 and RESOURCE_EXHAUSTED map to quota exhaustion."""
    assert classify("429 Too Many Requests") is ErrorClassification.QUOTA_EXHAUSTED
    assert classify("RESOURCE_EXHAUSTED: quota") is ErrorClassification.QUOTA_EXHAUSTED


def test_invalid_key() -> None:
    """API_KEY_INVALID and 'invalid API key' map to InvalidKey."""
    assert classify("400 API_KEY_INVALID") is ErrorClassification.INVALID_KEY
    assert classify("You passed an invalid API key") is ErrorClassification.INVALID_KEY


def test_unclassified() -> None:
    """Anything else is unclassified."""
    assert classify(ValueError("something odd")) is ErrorClassification.UNCLASSIFIED


def test_first_match_wins() -> None:
    """Transient markers are checked before quota markers."""
    assert classify("500 RESOURCE_EXHAUSTED") is ErrorClassification.TRANSIENT
    assert classify("429 API_KEY_INVALID") is ErrorClassification.QUOTA_EXHAUSTED


def test_classify_exhausted() -> None:
    """After retries, quota and key markers win; everything else is internal."""
    assert classify_exhausted("500 INTERNAL") is ErrorClassification.INTERNAL_ERROR
    assert classify_exhausted("503 Service Unavailable") is ErrorClassification.INTERNAL_ERROR
    assert classify_exhausted("504 Deadline Exceeded") is ErrorClassification.INTERNAL_ERROR
    assert classify_exhausted("500 RESOURCE_EXHAUSTED") is ErrorClassification.QUOTA_EXHAUSTED
    assert classify_exhausted("500 API_KEY_INVALID") is ErrorClassification.INVALID_KEY


def test_remediation_texts() -> None:
    """Every terminal classification except Unclassified has a fixed response."""
    for classification in (
        ErrorClassification.MISSING_KEY,
        ErrorClassification.QUOTA_EXHAUSTED,
        ErrorClassification.INVALID_KEY,
        ErrorClassification.INTERNAL_ERROR,
    ):
        response = remediation(classification)
        assert response is not None
        assert response.text == REMEDIATION_TEXT[classification]
        assert response.sources == []
    assert remediation(ErrorClassification.UNCLASSIFIED) is None
    assert remediation(ErrorClassification.TRANSIENT) is None
    assert "Quota Exhausted" in remediation(ErrorClassification.QUOTA_EXHAUSTED).text
