"""
Sequential multi-step executor.

Runs an ordered list of steps one at a time.  Each step's arguments may reference earlier results
through placeholder directives; a step may carry a ``condition`` (skip when false) and a
``validate`` rule (abort when unmet).  The first failure stops the batch and everything executed so
far is returned alongside the failing step.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
)

from pydantic import ValidationError

from stepwise.core.schema import (
    BatchData,
    BatchFailure,
    BatchRequest,
    BatchResult,
    ExecutionHistoryEntry,
    StepDescriptor,
)
from stepwise.engine.conditions import ConditionEvaluator
from stepwise.engine.resolver import PlaceholderResolver
from stepwise.engine.tool_executor import (
    RETURN_CACHE_KEY,
    ToolDispatcher,
)
from stepwise.engine.validation import ResultValidator

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Multiple functions executed successfully"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
class BatchAbort(RuntimeError):
    """Stops a batch; carries the failing step for the failure envelope."""

    def __init__(
        self,
        message: str,
        failed_function: Optional[str] = None,
        failed_at: Optional[int] = None,
    ):
        super().__init__(message)
        self.failed_function = failed_function
        self.failed_at = failed_at


class StructuralError(BatchAbort):
    """Malformed step list or unregistered tool. Raised before any dispatch."""


class ToolFailure(BatchAbort):
    """A tool returned failure or raised."""


class ValidationFailure(BatchAbort):
    """A step result did not satisfy its validation rule."""


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------
class SequentialExecutor:
    """
    Run step lists against a :class:`ToolDispatcher`.

    Example:
        executor = SequentialExecutor(ToolDispatcher(registry))
        outcome = await executor.run({"functions": [{"name": "searchTrades", "args": {}}]})
    """

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        resolver: PlaceholderResolver | None = None,
        conditions: ConditionEvaluator | None = None,
        validator: ResultValidator | None = None,
    ):
        self.dispatcher = dispatcher
        self.resolver = resolver or PlaceholderResolver(dispatcher.config)
        self.conditions = conditions or ConditionEvaluator()
        self.validator = validator or ResultValidator()

    def _check_structure(self, steps: List[StepDescriptor]) -> None:
        if not steps:
            raise StructuralError("No functions provided to execute")

        for position, step in enumerate(steps, start=1):
            if step.name not in self.dispatcher.registry:
                raise StructuralError(f"Unknown function: {step.name}", step.name, position)
            if step.args.get(RETURN_CACHE_KEY) is True:
                logger.error(
                    "Function %s in a multi-step batch uses %s=true; placeholders need actual data",
                    step.name,
                    RETURN_CACHE_KEY,
                )
                raise StructuralError(
                    f"Function {step.name} incorrectly uses {RETURN_CACHE_KEY}=true in "
                    "executeMultipleFunctions. Placeholders need actual data, not cache keys. "
                    f"Remove {RETURN_CACHE_KEY} from the function arguments.",
                    step.name,
                    position,
                )

    async def _execute(self, steps: List[StepDescriptor], history: List[ExecutionHistoryEntry]) -> Any:
        last_result: Any = None
        total = len(steps)

        for index, step in enumerate(steps):
            position = index + 1
            logger.info("Executing function %d/%d: %s", position, total, step.name)

            if step.condition and not self.conditions.evaluate(step.condition, history, last_result):
                reason = f"Condition not met: {step.condition}"
                logger.info("Skipping function %s due to condition: %s", step.name, step.condition)
                history.append(
                    ExecutionHistoryEntry(
                        tool_name=step.name,
                        resolved_args=dict(step.args),
                        result={"skipped": True, "reason": reason},
                        skipped=True,
                    )
                )
                continue

            resolved_args = self.resolver.resolve(step.args, history)

            # Only the final step must return full data; earlier ones may stay deferrable.
            preserve_cache = position < total
            result = await self.dispatcher.execute_function_call(
                step.name, resolved_args, preserve_cache=preserve_cache
            )

            if not result.success:
                raise ToolFailure(
                    f"Function {step.name} failed: {result.error}", step.name, position
                )

            if step.validation is not None and not self.validator.validate(result.data, step.validation):
                raise ValidationFailure(
                    f"Function {step.name} result failed validation: "
                    f"{step.validation.model_dump_json(by_alias=True, exclude_none=True)}",
                    step.name,
                    position,
                )

            history.append(
                ExecutionHistoryEntry(tool_name=step.name, resolved_args=resolved_args, result=result.data)
            )
            last_result = result.data

        return last_result

    async def run(self, request: BatchRequest | Mapping[str, Any]) -> BatchResult:
        """
        Execute every step of *request* in order.

        Parameters
        ----------
        request:
            A :class:`BatchRequest` or its wire form ``{"functions": [...], "description": ...}``.

        Returns
        -------
        BatchResult
            ``success`` with the full history and last result, or the failure envelope holding the
            steps completed before the abort.  Never raises.
        """
        history: List[ExecutionHistoryEntry] = []
        steps: List[StepDescriptor] = []
        try:
            try:
                batch = (
                    request
                    if isinstance(request, BatchRequest)
                    else BatchRequest.model_validate(request)
                )
            except ValidationError as exc:
                raise StructuralError(f"Invalid function list: {exc}") from exc

            steps = list(batch.functions)
            logger.info("Executing multiple functions: %s", [step.name for step in steps])
            self._check_structure(steps)
            final_result = await self._execute(steps, history)
        except BatchAbort as exc:
            logger.error("Batch aborted: %s", exc)
            return BatchResult(
                success=False,
                error=str(exc),
                data=BatchFailure(
                    completed_functions=history,
                    failed_function=exc.failed_function,
                    failed_at=exc.failed_at,
                ),
            )

        logger.info("All functions executed successfully")
        self.dispatcher.cleanup_cache_keys(history)

        return BatchResult(
            success=True,
            data=BatchData(
                description=batch.description or DEFAULT_DESCRIPTION,
                functions=history,
                final_result=final_result,
                total_functions=len(steps),
                skipped_functions=sum(1 for entry in history if entry.skipped),
            ),
        )

    async def execute(self, request: BatchRequest | Mapping[str, Any]) -> Dict[str, Any]:
        """Run *request* and return the camelCase wire form of the outcome."""
        outcome = await self.run(request)
        return outcome.model_dump(by_alias=True)
