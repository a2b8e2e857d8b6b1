"""
Configuration-related exceptions for agentchain.
"""


class ConfigurationError(Exception):
    """
    Raised when configuration loading or validation fails.

    Covers unreadable files, YAML syntax errors, and chain definitions that
    fail model or structural validation.
    """
    pass
