import pytest
from conceptvault.request_tokens import ANALYSIS_SLOT, RequestTracker, assessment_slot
from conceptvault.exceptions import StaleResponseError


def test_newest_token_wins():
    """Test that a newer request supersedes an older one in the same slot."""
    tracker = RequestTracker()
    first = tracker.issue(ANALYSIS_SLOT)
    second = tracker.issue(ANALYSIS_SLOT)

    assert not tracker.is_current(first)
    assert tracker.is_current(second)
    with pytest.raises(StaleResponseError):
        tracker.check(first)
    tracker.check(second)


def test_slots_are_independent():
    """Test that assessments of different nodes do not supersede each other."""
    tracker = RequestTracker()
    a = tracker.issue(assessment_slot("c1"), subject="c1")
    b = tracker.issue(assessment_slot("c2"), subject="c2")

    assert tracker.is_current(a)
    assert tracker.is_current(b)
    assert a.subject == "c1"
    assert b.generation > a.generation


def test_retired_token_cannot_apply_twice():
    """Test that a settled token is no longer current."""
    tracker = RequestTracker()
    token = tracker.issue(ANALYSIS_SLOT)
    tracker.retire(token)

    assert not tracker.is_current(token)
    with pytest.raises(StaleResponseError):
        tracker.check(token)


def test_retiring_stale_token_keeps_newer():
    """Test that retiring an old token leaves the newer one alone."""
    tracker = RequestTracker()
    old = tracker.issue(ANALYSIS_SLOT)
    new = tracker.issue(ANALYSIS_SLOT)
    tracker.retire(old)

    assert tracker.is_current(new)
