import pytest

from cqrs_event_sourcing import EventFilter, ValidationError, clean_filter, normalize_filter


def test_clean_filter_removes_none_values():
    cleaned = clean_filter({"aggregate_ids": ["a"], "start_time": None, "finish_time": None, "limit": 5})
    assert cleaned == {"aggregate_ids": ["a"], "limit": 5}


def test_clean_filter_keeps_falsy_values():
    cleaned = clean_filter({"limit": 0, "event_types": [], "cursor": "", "start_time": None})
    assert cleaned == {"limit": 0, "event_types": [], "cursor": ""}


def test_clean_filter_does_not_mutate_input():
    raw = {"limit": None, "finish_time": 10}
    clean_filter(raw)
    assert raw == {"limit": None, "finish_time": 10}


def test_normalize_filter_leaves_absent_fields_out_of_query():
    event_filter = normalize_filter({"aggregate_ids": ["a"], "finish_time": None, "limit": None})
    assert isinstance(event_filter, EventFilter)
    assert event_filter.as_query() == {"aggregate_ids": ["a"]}
    assert "finish_time" not in event_filter.model_fields_set


def test_normalize_filter_preserves_zero_limit():
    event_filter = normalize_filter({"limit": 0, "start_time": 0})
    assert event_filter.as_query() == {"limit": 0, "start_time": 0}


def test_normalize_filter_rejects_negative_limit():
    with pytest.raises(ValidationError, match="Invalid event filter"):
        normalize_filter({"limit": -1})


def test_normalize_filter_rejects_unknown_keys():
    with pytest.raises(ValidationError):
        normalize_filter({"aggregate_id": "a"})


def test_normalize_filter_rejects_malformed_times():
    with pytest.raises(ValidationError) as exc_info:
        normalize_filter({"finish_time": "yesterday"})
    assert exc_info.value.context["event_filter"] == {"finish_time": "yesterday"}
