"""
Unit tests for loading chain definitions from YAML.
"""

from pathlib import Path

import pytest

from agentchain.config.chain_config import ChainConfigurationLoader
from agentchain.config.exceptions import ConfigurationError
from agentchain.models.constants import AgentType, ExecutionMode

SHIPPED_CONFIG = Path(__file__).parents[4] / "config" / "chains.yaml"

VALID_YAML = """
chains:
  - name: digest
    steps:
      - step_number: 0
        agent_type: TREND
      - step_number: 1
        agent_type: CONTENT
        depends_on: [0]
  - name: fanout
    execution_mode: parallel
    steps:
      - step_number: 0
        agent_type: SEO
      - step_number: 1
        agent_type: AD
"""


@pytest.fixture
def write_config(tmp_path):
    def _write(content: str) -> str:
        path = tmp_path / "chains.yaml"
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _write


def _load(path, settings):
    return ChainConfigurationLoader(path, settings).load_chains()


@pytest.mark.unit
class TestLoadChains:

    def test_missing_file_loads_nothing(self, tmp_path, test_settings):
        assert _load(str(tmp_path / "absent.yaml"), test_settings) == []

    def test_empty_file_loads_nothing(self, write_config, test_settings):
        assert _load(write_config(""), test_settings) == []

    def test_valid_file(self, write_config, test_settings):
        definitions = _load(write_config(VALID_YAML), test_settings)

        assert [d.name for d in definitions] == ["digest", "fanout"]
        assert definitions[0].steps[1].depends_on == {0}
        assert definitions[1].execution_mode == ExecutionMode.PARALLEL
        assert definitions[1].steps[1].agent_type == AgentType.AD

    def test_file_without_chains_key(self, write_config, test_settings):
        assert _load(write_config("other: 1\n"), test_settings) == []

    def test_shipped_configuration_is_valid(self, test_settings):
        definitions = _load(str(SHIPPED_CONFIG), test_settings)

        assert {d.name for d in definitions} == {"weekly-trend-digest", "launch-fanout"}


@pytest.mark.unit
class TestInvalidConfiguration:

    def test_yaml_syntax_error_reports_location(self, write_config, test_settings):
        path = write_config("chains:\n  - name: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            _load(path, test_settings)

    def test_root_must_be_mapping(self, write_config, test_settings):
        with pytest.raises(ConfigurationError, match="root must be a mapping"):
            _load(write_config("- just\n- a list\n"), test_settings)

    def test_chains_must_be_list(self, write_config, test_settings):
        with pytest.raises(ConfigurationError, match="'chains' must be a list"):
            _load(write_config("chains: {name: x}\n"), test_settings)

    def test_model_errors_name_the_chain_and_field(self, write_config, test_settings):
        path = write_config(
            "chains:\n"
            "  - name: broken\n"
            "    steps:\n"
            "      - step_number: 0\n"
            "        agent_type: NOT_AN_AGENT\n"
        )

        with pytest.raises(ConfigurationError) as exc_info:
            _load(path, test_settings)

        message = str(exc_info.value)
        assert "Chain 'broken' is invalid" in message
        assert "steps.0.agent_type" in message

    def test_structural_errors_are_rejected(self, write_config, test_settings):
        path = write_config(
            "chains:\n"
            "  - name: dangling\n"
            "    steps:\n"
            "      - step_number: 0\n"
            "        agent_type: TREND\n"
            "        depends_on: [3]\n"
        )

        with pytest.raises(ConfigurationError, match="depends on non-existent step 3"):
            _load(path, test_settings)

    def test_duplicate_names_are_rejected(self, write_config, test_settings):
        path = write_config(
            "chains:\n"
            "  - name: twice\n"
            "    steps: [{step_number: 0, agent_type: TREND}]\n"
            "  - name: twice\n"
            "    steps: [{step_number: 0, agent_type: SEO}]\n"
        )

        with pytest.raises(ConfigurationError, match="defined more than once"):
            _load(path, test_settings)
