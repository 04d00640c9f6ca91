import json

import pytest

from promptcache.chunking import (
    chunk_json_lines,
    chunk_records,
    filter_records,
    load_chunks,
    reduction_stats,
)
from promptcache.config import CacheConfig
from promptcache.errors import InvalidArgumentError
from promptcache.tokens import ApproximateTokenCounter


def test_line_chunks_close_when_target_reached():
    text = "\n".join(["aaaa", "bbbb", "cc", "dddddd", "e"])

    chunks = chunk_json_lines(text, target_chunk_size=8)

    assert [c.content for c in chunks] == ["aaaa\nbbbb", "cc\ndddddd", "e"]
    assert [c.index for c in chunks] == [0, 1, 2]


def test_line_chunks_empty_input():
    assert chunk_json_lines("", 10) == []


def test_line_chunks_reject_non_positive_target():
    with pytest.raises(InvalidArgumentError):
        chunk_json_lines("abc", 0)


def test_filter_records_and_reduction():
    records = [
        {"id": 1, "priority": "HIGH", "notes": "x" * 200},
        {"id": 2, "priority": "LOW", "notes": "y" * 200},
    ]

    filtered = filter_records(records, ["id", "priority"])
    stats = reduction_stats(records, filtered)

    assert filtered == [{"id": 1, "priority": "HIGH"}, {"id": 2, "priority": "LOW"}]
    assert stats.filtered_size_kb < stats.original_size_kb
    assert 0 < stats.reduction_percent < 100


def test_records_sorted_by_priority_then_risk():
    records = [
        {"id": "low", "priority": "LOW", "risk_score": 0.9},
        {"id": "high-a", "priority": "HIGH", "risk_score": 0.2},
        {"id": "med", "priority": "MEDIUM", "risk_score": 0.5},
        {"id": "high-b", "priority": "HIGH", "risk_score": 0.8},
    ]

    chunks = chunk_records(records, ApproximateTokenCounter(), max_chunk_tokens=10_000)

    assert len(chunks) == 1
    assert [r["id"] for r in chunks[0]] == ["high-b", "high-a", "med", "low"]


def test_records_packed_under_token_budget():
    counter = ApproximateTokenCounter()
    records = [{"id": i, "payload": "z" * 100} for i in range(5)]
    per_record = counter.count_tokens(json.dumps(records[0]))

    chunks = chunk_records(records, counter, max_chunk_tokens=per_record * 2)

    assert [len(chunk) for chunk in chunks] == [2, 2, 1]


def test_oversize_record_gets_own_chunk():
    records = [{"id": 1, "payload": "z" * 1000}, {"id": 2, "payload": "small"}]

    chunks = chunk_records(records, max_chunk_tokens=10)

    assert len(chunks) == 2


def test_load_chunks_uses_records_for_json_arrays():
    text = json.dumps([{"id": i, "priority": "HIGH"} for i in range(3)])

    chunks = load_chunks(text, CacheConfig(max_chunk_tokens=10_000))

    assert len(chunks) == 1
    assert json.loads(chunks[0].content)[0]["id"] == 0


def test_load_chunks_falls_back_to_lines():
    text = "not json\n" * 10

    chunks = load_chunks(text, CacheConfig(target_chunk_size=20))

    assert len(chunks) > 1
    assert "".join(c.content for c in chunks).count("not json") == 10


def test_line_chunks_skip_blank_trailer():
    assert [c.content for c in chunk_json_lines("aaaa\n", 4)] == ["aaaa"]
    assert [c.content for c in chunk_json_lines("aaaa\nbbbb\n\n", 4)] == ["aaaa", "bbbb"]


def test_load_chunks_filters_relevant_fields(caplog):
    records = [
        {"id": i, "priority": "HIGH", "notes": "long free text " * 10} for i in range(3)
    ]
    config = CacheConfig(max_chunk_tokens=10_000, relevant_fields=["id", "priority"])

    with caplog.at_level("INFO", logger="promptcache.chunking"):
        chunks = load_chunks(json.dumps(records), config)

    packed = json.loads(chunks[0].content)
    assert all(set(record) == {"id", "priority"} for record in packed)
    assert "reduction" in caplog.text
