"""
Tests for the dedup & convergence tracker.
"""
from hypothesis import given, settings, strategies as st

from conftest import post, posts
from scrapers.tracker import ConvergenceTracker, dedup_key


# ============================================
# DEDUP KEY
# ============================================

def test_dedup_key_normalizes_case_and_whitespace():
    assert dedup_key("  Hello World  ") == "hello world"
    assert dedup_key(None) == ""


def test_dedup_key_uses_first_150_characters():
    text = "A" * 200
    assert dedup_key(text) == "a" * 150


def test_candidates_sharing_a_150_char_prefix_collapse_first_wins():
    tracker = ConvergenceTracker(target=5)
    shared = "x" * 150
    first = post(shared + " first ending", author="alice")
    second = post(shared.upper() + " a different ending", author="bob")

    assert tracker.accept(first) is True
    assert tracker.accept(second) is False

    assert len(tracker.items) == 1
    assert tracker.items[0].author == "alice"
    assert tracker.items[0].text.endswith("first ending")


def test_case_and_padding_variants_are_the_same_item():
    tracker = ConvergenceTracker(target=5)
    assert tracker.accept(post("Breaking: Fed holds rates steady"))
    assert not tracker.accept(post("   BREAKING: FED HOLDS RATES STEADY  "))
    assert len(tracker.items) == 1


# ============================================
# NOISE FILTER
# ============================================

def test_keys_shorter_than_11_characters_are_rejected():
    tracker = ConvergenceTracker(target=5)
    assert tracker.accept(post("0123456789")) is False  # 10 chars
    assert tracker.accept(post("   0123456789   ")) is False
    assert tracker.accept(post("0123456789a")) is True  # 11 chars
    assert len(tracker.items) == 1


def test_snapshot_items_skip_the_noise_filter():
    tracker = ConvergenceTracker(target=5)
    assert tracker.accept(post("short"), origin="snapshot") is True
    assert tracker.items[0].origin == "snapshot"
    assert tracker.items[0].id.startswith("fallback_")


# ============================================
# TARGET BOUND
# ============================================

def test_accept_refuses_once_target_reached():
    tracker = ConvergenceTracker(target=2)
    new = tracker.merge(posts("batch", 5))
    assert new == 2
    assert tracker.is_complete
    assert tracker.remaining == 0
    assert tracker.accept(post("yet another distinct post text")) is False
    assert len(tracker.items) == 2


def test_item_ids_are_unique_and_synthetic():
    tracker = ConvergenceTracker(target=10)
    tracker.merge(posts("ids", 10))
    ids = [i.id for i in tracker.items]
    assert len(set(ids)) == 10
    assert all(i.startswith("browser_") for i in ids)


# ============================================
# ITERATION OUTCOMES
# ============================================

def test_zero_new_increments_stuck_but_not_empty_when_oracle_returned_duplicates():
    tracker = ConvergenceTracker(target=5)
    tracker.record_iteration_outcome(tracker.merge(posts("a", 2)))
    assert (tracker.stuck_count, tracker.consecutive_empty_count) == (0, 0)

    tracker.record_iteration_outcome(tracker.merge(posts("a", 2)), oracle_empty=False)
    assert tracker.stuck_count == 1
    assert tracker.consecutive_empty_count == 0


def test_empty_oracle_call_increments_both_counters():
    tracker = ConvergenceTracker(target=5)
    tracker.record_iteration_outcome(0, oracle_empty=True)
    tracker.record_iteration_outcome(0, oracle_empty=True)
    assert tracker.stuck_count == 2
    assert tracker.consecutive_empty_count == 2


def test_growth_resets_both_counters():
    tracker = ConvergenceTracker(target=10)
    for _ in range(3):
        tracker.record_iteration_outcome(0, oracle_empty=True)
    assert tracker.stuck_count == 3

    new = tracker.merge(posts("growth", 1))
    tracker.record_iteration_outcome(new)
    assert tracker.stuck_count == 0
    assert tracker.consecutive_empty_count == 0


def test_reset_counters():
    tracker = ConvergenceTracker(target=5)
    tracker.stuck_count = 4
    tracker.consecutive_empty_count = 6
    tracker.reset_counters()
    assert (tracker.stuck_count, tracker.consecutive_empty_count) == (0, 0)


# ============================================
# PROPERTY: bound and distinct keys
# ============================================

texts = st.lists(
    st.text(alphabet=st.sampled_from("abcXYZ  "), min_size=0, max_size=30),
    max_size=80,
)


@given(target=st.integers(min_value=1, max_value=50), batch=texts)
@settings(max_examples=100, deadline=None)
def test_property_items_bounded_and_keys_distinct(target, batch):
    tracker = ConvergenceTracker(target=target)
    tracker.merge([post(t) for t in batch])

    keys = [dedup_key(i.text) for i in tracker.items]
    assert len(tracker.items) <= target
    assert len(keys) == len(set(keys))
    assert set(keys) == tracker.seen_keys
    assert all(len(k) >= 11 for k in keys)
