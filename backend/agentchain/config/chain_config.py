"""
Loading of chain definitions from YAML.

The file is optional: when it does not exist no chains are registered at
startup. When it exists it must parse, every entry must be a valid
ChainDefinition and every definition must pass structural validation;
anything else is a ConfigurationError so a broken file fails fast.

Expected layout::

    chains:
      - name: weekly-digest
        execution_mode: parallel
        steps:
          - step_number: 0
            agent_type: TREND
          - step_number: 1
            agent_type: CONTENT
            depends_on: [0]
"""

import os
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError

from agentchain.config.exceptions import ConfigurationError
from agentchain.config.settings import Settings, get_settings
from agentchain.models.chain_models import ChainDefinition
from agentchain.services.chain_validator import validate
from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)


class ChainConfigurationLoader:
    """Reads, parses and validates the chain definitions file."""

    def __init__(self, config_file_path: str, settings: Optional[Settings] = None):
        self.config_file_path = config_file_path
        self.settings = settings or get_settings()
        logger.info(f"Initialized ChainConfigurationLoader with file path: {config_file_path}")

    def load_chains(self) -> List[ChainDefinition]:
        """
        Load and validate every chain in the file.

        Returns:
            Definitions in file order; empty when the file is missing or empty

        Raises:
            ConfigurationError: For unreadable, malformed or invalid content
        """
        if not os.path.exists(self.config_file_path):
            logger.info(f"Chain configuration file not found: {self.config_file_path}. No chains loaded.")
            return []

        try:
            raw_config = self._load_yaml_file()
        except PermissionError as e:
            raise ConfigurationError(
                f"Permission denied accessing chain configuration file {self.config_file_path}: {e}"
            ) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(self._format_yaml_error(e)) from e

        if raw_config is None:
            logger.info("Chain configuration file is empty. No chains loaded.")
            return []

        if not isinstance(raw_config, dict):
            raise ConfigurationError(
                f"Chain configuration root must be a mapping, got {type(raw_config).__name__}. "
                f"Expected format: chains: [...]"
            )

        raw_chains = raw_config.get("chains") or []
        if not isinstance(raw_chains, list):
            raise ConfigurationError(f"'chains' must be a list, got {type(raw_chains).__name__}")

        definitions = [self._parse_chain(index, raw) for index, raw in enumerate(raw_chains)]
        self._check_unique_names(definitions)

        logger.info(f"Loaded {len(definitions)} chain definitions from {self.config_file_path}")
        return definitions

    def _load_yaml_file(self) -> Any:
        try:
            with open(self.config_file_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f)
        except UnicodeDecodeError as e:
            raise ConfigurationError(
                f"Chain configuration file {self.config_file_path} contains invalid UTF-8 encoding: {e}"
            ) from e

    def _parse_chain(self, index: int, raw: Any) -> ChainDefinition:
        label = raw.get("name", f"#{index}") if isinstance(raw, dict) else f"#{index}"
        try:
            definition = ChainDefinition.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(self._format_validation_error(label, e)) from e

        result = validate(definition, self.settings)
        if not result.is_valid:
            raise ConfigurationError(
                f"Chain '{label}' is structurally invalid: " + "; ".join(result.error_messages)
            )
        for warning in result.warnings:
            logger.warning(f"Chain '{label}': {warning}")
        return definition

    @staticmethod
    def _check_unique_names(definitions: List[ChainDefinition]) -> None:
        seen = set()
        for definition in definitions:
            if definition.name in seen:
                raise ConfigurationError(f"Chain name '{definition.name}' is defined more than once")
            seen.add(definition.name)

    def _format_yaml_error(self, error: yaml.YAMLError) -> str:
        mark = getattr(error, "problem_mark", None)
        if mark is not None:
            return (
                f"Invalid YAML in {self.config_file_path} at line {mark.line + 1}, "
                f"column {mark.column + 1}: {getattr(error, 'problem', error)}"
            )
        return f"Invalid YAML in {self.config_file_path}: {error}"

    @staticmethod
    def _format_validation_error(label: str, error: ValidationError) -> str:
        problems = []
        for item in error.errors():
            location = ".".join(str(part) for part in item["loc"]) or "<root>"
            problems.append(f"{location}: {item['msg']}")
        return f"Chain '{label}' is invalid: " + "; ".join(problems)
