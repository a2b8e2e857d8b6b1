"""
Handoff protocol: threads one step's output into the next step's input.

Every transfer, including identity transfers, appends exactly one
HandoffRecord to the execution's log, so that the log alone is enough to
replay the inputs every step was invoked with.
"""

import copy
import json
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from agentchain.models.constants import AgentType, HandoffType
from agentchain.models.execution_models import HandoffRecord
from agentchain.services.condition_evaluator import resolve_path
from agentchain.utils.timestamp import now_us

_MISSING = object()


class HandoffResult(NamedTuple):
    payload: Dict[str, Any]
    handoff_type: HandoffType


def apply_mapping(data: Mapping[str, Any], mapping: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    """
    Select and rename fields.

    ``mapping`` is ``{target_field: source_field}``; source fields may be
    dotted paths. An empty mapping is the identity. Source fields that do
    not exist are left out of the result.
    """
    if not mapping:
        return dict(data)

    result: Dict[str, Any] = {}
    for target, source in mapping.items():
        value = resolve_path(data, source, _MISSING)
        if value is not _MISSING:
            result[target] = value
    return result


def classify_handoff(source: Mapping[str, Any], payload: Mapping[str, Any], fan_in: bool = False) -> HandoffType:
    """
    Classify a transfer by comparing the payload with what was produced.

    DIRECT is an unchanged transfer (AGGREGATED when it feeds a step with
    several sources), FILTERED keeps a strict subset of fields with their
    values untouched, anything else is TRANSFORMED.
    """
    if dict(payload) == dict(source):
        return HandoffType.AGGREGATED if fan_in else HandoffType.DIRECT
    if set(payload) < set(source) and all(payload[key] == source[key] for key in payload):
        return HandoffType.FILTERED
    return HandoffType.TRANSFORMED


def handoff(
    from_output: Mapping[str, Any],
    output_mapping: Optional[Mapping[str, str]] = None,
    input_mapping: Optional[Mapping[str, str]] = None,
    fan_in: bool = False,
) -> HandoffResult:
    """
    Map a producing step's output into the consuming step's input envelope.

    The producer's ``output_mapping`` is applied first, then the consumer's
    ``input_mapping``.
    """
    staged = apply_mapping(from_output, output_mapping)
    payload = apply_mapping(staged, input_mapping)
    return HandoffResult(payload=payload, handoff_type=classify_handoff(from_output, payload, fan_in))


def payload_size(payload: Mapping[str, Any]) -> int:
    """Size in bytes of the JSON encoding of a payload."""
    return len(json.dumps(payload, default=str, sort_keys=True).encode("utf-8"))


class HandoffLog:
    """
    Append-only handoff log bound to one execution's record.

    Only the engine coroutine that owns the execution writes to it.
    """

    def __init__(self, records: List[HandoffRecord]):
        self._records = records
        self._next_sequence = max((r.sequence_number for r in records), default=-1) + 1

    def __len__(self) -> int:
        return len(self._records)

    def record(
        self,
        to_step: int,
        to_agent: AgentType,
        result: HandoffResult,
        from_step: Optional[int] = None,
        from_agent: Optional[AgentType] = None,
    ) -> HandoffRecord:
        """Append one entry; the payload is copied so later mutation cannot alter the log."""
        payload = copy.deepcopy(result.payload)
        entry = HandoffRecord(
            sequence_number=self._next_sequence,
            from_step=from_step,
            to_step=to_step,
            from_agent=from_agent,
            to_agent=to_agent,
            payload=payload,
            handoff_type=result.handoff_type,
            data_size=payload_size(payload),
            timestamp_us=now_us(),
        )
        self._records.append(entry)
        self._next_sequence += 1
        return entry
