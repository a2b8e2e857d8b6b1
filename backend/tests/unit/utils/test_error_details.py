"""Tests for agentchain.utils.error_details module."""

import pytest

from agentchain.services.exceptions import StepInvocationError
from agentchain.utils.error_details import describe_failure, error_payload, extract_error_details


@pytest.mark.unit
class TestExtractErrorDetails:

    def test_type_and_message(self):
        details = extract_error_details(ValueError("bad input"))

        assert details.startswith("Type=ValueError | Message=bad input")

    def test_root_cause_is_reported(self):
        try:
            try:
                raise ConnectionError("socket closed")
            except ConnectionError as e:
                raise StepInvocationError("agent failed", step_number=2, agent_type="SEO") from e
        except StepInvocationError as error:
            details = extract_error_details(error)

        assert "RootCause=ConnectionError: socket closed" in details
        assert "step_number=2" in details
        assert "agent_type='SEO'" in details


@pytest.mark.unit
class TestDescribeFailure:

    def test_type_and_message(self):
        assert describe_failure(RuntimeError("boom")) == "RuntimeError: boom"

    def test_empty_message(self):
        assert describe_failure(TimeoutError()) == "TimeoutError: no message"


@pytest.mark.unit
def test_error_payload_drops_none_extras():
    payload = error_payload("timeout", "too slow", running_steps=[1], spent=None)

    assert payload == {"reason": "timeout", "message": "too slow", "running_steps": [1]}
