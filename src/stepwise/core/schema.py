"""
Schema definitions for the step list <-> executor <-> tool contracts.

These data models serve as the contract between the orchestrating model, the execution engine and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.  Field names are snake_case in Python and camelCase on the wire.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for models that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldValueRule(_WireModel):
    """Expected value at a dot-path of a step result."""

    model_config = ConfigDict(frozen=True)

    field: str
    value: Any = None


class ValidationRule(_WireModel):
    """Declarative post-hoc checks on a step result; all present checks must hold."""

    model_config = ConfigDict(frozen=True)

    min_count: Optional[int] = None
    max_count: Optional[int] = None
    has_field: Optional[str] = None
    field_value: Optional[FieldValueRule] = None


class StepDescriptor(_WireModel):
    """One step the orchestrating model wants executed."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Registered tool name")
    args: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the tool")
    condition: Optional[str] = Field(None, description="Execute only when this evaluates true")
    validation: Optional[ValidationRule] = Field(
        None, alias="validate", description="Rules the step result must satisfy"
    )


class BatchRequest(_WireModel):
    """An ordered list of steps plus an optional description."""

    functions: List[StepDescriptor] = Field(default_factory=list)
    description: Optional[str] = None


class ToolResult(_WireModel):
    """Uniform envelope every tool call produces."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    tool: Optional[str] = Field(None, description="Name of the producing tool")


class ExecutionHistoryEntry(_WireModel):
    """A single executed or skipped step (for chaining and reporting)."""

    tool_name: str
    resolved_args: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    skipped: bool = False


class CacheEntry(_WireModel):
    """A deferred result held in the result cache."""

    key: str
    data: Any = None
    timestamp: float
    producer_name: str


class BatchData(_WireModel):
    """Payload of a successful batch."""

    description: str
    functions: List[ExecutionHistoryEntry]
    final_result: Any = None
    total_functions: int
    skipped_functions: int


class BatchFailure(_WireModel):
    """Payload of an aborted batch; everything executed so far is preserved."""

    completed_functions: List[ExecutionHistoryEntry] = Field(default_factory=list)
    failed_function: Optional[str] = None
    failed_at: Optional[int] = None


class BatchResult(_WireModel):
    """Engine output for one run."""

    success: bool
    data: BatchData | BatchFailure | None = None
    error: Optional[str] = None
