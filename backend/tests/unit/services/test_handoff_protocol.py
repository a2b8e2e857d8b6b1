"""
Unit tests for the handoff protocol and handoff log.
"""

import json

import pytest

from agentchain.models.constants import AgentType, HandoffType
from agentchain.models.execution_models import HandoffRecord
from agentchain.services.handoff_protocol import (
    HandoffLog,
    apply_mapping,
    classify_handoff,
    handoff,
    payload_size,
)


@pytest.mark.unit
class TestApplyMapping:

    def test_empty_mapping_is_identity_copy(self):
        data = {"a": 1}

        result = apply_mapping(data, {})

        assert result == data
        assert result is not data

    def test_renames_and_selects(self):
        assert apply_mapping({"a": 1, "b": 2}, {"x": "a"}) == {"x": 1}

    def test_dotted_source(self):
        assert apply_mapping({"meta": {"score": 0.7}}, {"score": "meta.score"}) == {"score": 0.7}

    def test_missing_source_is_dropped(self):
        assert apply_mapping({"a": 1}, {"x": "a", "y": "nope"}) == {"x": 1}


@pytest.mark.unit
class TestClassifyHandoff:

    def test_unchanged_is_direct(self):
        assert classify_handoff({"a": 1}, {"a": 1}) == HandoffType.DIRECT

    def test_unchanged_fan_in_is_aggregated(self):
        assert classify_handoff({"a": 1}, {"a": 1}, fan_in=True) == HandoffType.AGGREGATED

    def test_strict_subset_is_filtered(self):
        assert classify_handoff({"a": 1, "b": 2}, {"a": 1}) == HandoffType.FILTERED

    def test_renamed_is_transformed(self):
        assert classify_handoff({"a": 1}, {"x": 1}) == HandoffType.TRANSFORMED

    def test_changed_value_is_transformed(self):
        assert classify_handoff({"a": 1, "b": 2}, {"a": 5}) == HandoffType.TRANSFORMED


@pytest.mark.unit
class TestHandoff:

    def test_identity_transfer(self):
        result = handoff({"text": "hi"})

        assert result.payload == {"text": "hi"}
        assert result.handoff_type == HandoffType.DIRECT

    def test_output_mapping_then_input_mapping(self):
        output = {"result": "draft", "tokens": 120}

        result = handoff(output, output_mapping={"digest": "result"}, input_mapping={"body": "digest"})

        assert result.payload == {"body": "draft"}
        assert result.handoff_type == HandoffType.TRANSFORMED

    def test_output_mapping_selecting_existing_keys_is_filtered(self):
        result = handoff({"result": "draft", "tokens": 120}, output_mapping={"result": "result"})

        assert result.payload == {"result": "draft"}
        assert result.handoff_type == HandoffType.FILTERED


@pytest.mark.unit
class TestHandoffLog:

    def test_appends_with_increasing_sequence(self):
        records = []
        log = HandoffLog(records)

        first = log.record(0, AgentType.TREND, handoff({"seed": 1}))
        second = log.record(1, AgentType.CONTENT, handoff({"x": 1}), from_step=0, from_agent=AgentType.TREND)

        assert [r.sequence_number for r in records] == [0, 1]
        assert first.from_step is None
        assert second.from_agent == AgentType.TREND
        assert len(log) == 2

    def test_continues_after_existing_records(self):
        existing = HandoffRecord(
            sequence_number=4, to_step=0, to_agent=AgentType.TREND,
            handoff_type=HandoffType.DIRECT, timestamp_us=1,
        )
        log = HandoffLog([existing])

        entry = log.record(1, AgentType.CONTENT, handoff({}))

        assert entry.sequence_number == 5

    def test_payload_is_copied(self):
        source = {"nested": {"value": 1}}
        log = HandoffLog([])

        entry = log.record(0, AgentType.TREND, handoff(source))
        source["nested"]["value"] = 99

        assert entry.payload == {"nested": {"value": 1}}

    def test_data_size_is_json_length(self):
        payload = {"text": "hello"}
        log = HandoffLog([])

        entry = log.record(0, AgentType.TREND, handoff(payload))

        assert entry.data_size == len(json.dumps(payload, sort_keys=True).encode("utf-8"))
        assert entry.data_size == payload_size(payload)
