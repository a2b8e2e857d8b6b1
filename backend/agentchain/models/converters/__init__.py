"""
Conversion utilities between SQLModel rows and runtime execution records.
"""

from .execution_converters import (
    chain_response_to_summary,
    chain_row_to_response,
    execution_row_to_summary,
    handoff_row_to_record,
    handoff_to_row,
    record_to_execution_row,
    rows_to_execution_record,
    step_row_to_record,
    step_to_row,
)

__all__ = [
    "chain_response_to_summary",
    "chain_row_to_response",
    "execution_row_to_summary",
    "handoff_row_to_record",
    "handoff_to_row",
    "record_to_execution_row",
    "rows_to_execution_record",
    "step_row_to_record",
    "step_to_row",
]
