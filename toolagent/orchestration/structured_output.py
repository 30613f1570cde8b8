"""
Structured-output gate.

When a typed final answer is required, a synthetic ``submit_final_answer``
tool is advertised to the model. Calls to it are intercepted by the loop,
never executed: valid arguments end the run with the validated payload,
invalid ones are answered with an error result so the model can retry.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from ..errors import ToolArgumentsError
from ..models import MissingStructuredOutputPolicy, ToolCallRequest, ToolCallResult
from ..tools.descriptor import RawArguments, ToolDescriptor, ToolOrigin, error_result
from ..tools.local import resolve_arguments
from ..tools.schema import SchemaNode

logger = logging.getLogger(__name__)

FINAL_ANSWER_TOOL_NAME = "submit_final_answer"

FINAL_ANSWER_DESCRIPTION = (
    "Submit the final answer to the user's request. Call this tool once you "
    "have everything you need; its arguments are the answer."
)

FORMATTING_INSTRUCTIONS = (
    f"IMPORTANT: Always use the `{FINAL_ANSWER_TOOL_NAME}` tool to deliver your "
    "final answer. Call it exactly once, with arguments that match its schema, "
    "and do not reply with plain text instead."
)

# Non-object output schemas are wrapped in an object under this field.
WRAPPED_FIELD = "output"


def final_answer_schema(output_schema: SchemaNode) -> SchemaNode:
    """Argument schema of the synthetic tool for a given output schema."""
    if output_schema.kind == "object":
        return output_schema
    return SchemaNode.object_of({WRAPPED_FIELD: output_schema})


def final_answer_descriptor(output_schema: SchemaNode) -> ToolDescriptor:
    """The synthetic final-answer tool. Its invoke is a no-op."""

    async def invoke(raw_arguments: RawArguments) -> ToolCallResult:
        return ToolCallResult(tool_name=FINAL_ANSWER_TOOL_NAME, output="")

    return ToolDescriptor(
        name=FINAL_ANSWER_TOOL_NAME,
        description=FINAL_ANSWER_DESCRIPTION,
        schema=final_answer_schema(output_schema),
        origin=ToolOrigin.LOCAL,
        invoke=invoke,
    )


@dataclass(frozen=True)
class GateVerdict:
    """Result of inspecting one final-answer call."""

    accepted: bool
    payload: Any = None
    error: Optional[ToolCallResult] = None


class StructuredOutputGate:
    """Intercepts and validates final-answer tool calls."""

    def __init__(
        self,
        output_schema: Optional[SchemaNode] = None,
        policy: MissingStructuredOutputPolicy = MissingStructuredOutputPolicy.PERMISSIVE,
    ):
        self.output_schema = output_schema
        self.policy = policy
        self._tool_schema: Optional[SchemaNode] = None
        self._adapter = None
        if output_schema is not None:
            self._tool_schema = final_answer_schema(output_schema)
            self._adapter = self._tool_schema.adapter("FinalAnswer")

    @property
    def enabled(self) -> bool:
        return self.output_schema is not None

    @property
    def formatting_instructions(self) -> Optional[str]:
        return FORMATTING_INSTRUCTIONS if self.enabled else None

    def is_final_answer(self, call: ToolCallRequest) -> bool:
        return self.enabled and call.tool_name == FINAL_ANSWER_TOOL_NAME

    def validate_payload(self, raw_arguments: RawArguments) -> Any:
        """
        Validate final-answer arguments against the output schema.

        Validating an already valid payload returns it unchanged.

        Raises:
            ToolArgumentsError: No object could be recovered from the arguments.
            pydantic.ValidationError: The object does not match the schema.
        """
        if self._tool_schema is None:
            raise ToolArgumentsError(FINAL_ANSWER_TOOL_NAME, raw_arguments, "no output schema")
        candidate = resolve_arguments(
            FINAL_ANSWER_TOOL_NAME, self._tool_schema, raw_arguments, self._adapter
        )
        validated = self._tool_schema.validate(candidate, self._adapter)
        if self._tool_schema is not self.output_schema:
            return validated[WRAPPED_FIELD]
        return validated

    def check(self, call: ToolCallRequest) -> GateVerdict:
        """Accept the call's payload, or build the error result fed back to the model."""
        try:
            payload = self.validate_payload(call.raw_arguments)
        except (ToolArgumentsError, ValidationError) as e:
            logger.warning("Rejected final answer: %s", e)
            error = error_result(
                FINAL_ANSWER_TOOL_NAME,
                f"Invalid final answer, call {FINAL_ANSWER_TOOL_NAME} again with "
                f"arguments matching its schema. {e}",
                call_id=call.call_id,
            )
            return GateVerdict(accepted=False, error=error)
        return GateVerdict(accepted=True, payload=payload)

    @property
    def fails_on_missing_output(self) -> bool:
        return self.enabled and self.policy == MissingStructuredOutputPolicy.FAIL
