"""
Core orchestration loop.

Drives one agent run: the assembled prompt goes to the chat model, every
tool call it requests is executed in the order it was requested, results
are appended to the conversation, and the model is called again until it
answers without tool calls, submits a structured final answer, runs out
of iterations, or the run is cancelled.

Per-iteration flow:
    1. Check cancellation, then the iteration budget
    2. Call the model (raced against the cancellation token)
    3. No tool calls: finalize the answer
    4. Scan the calls for a final-answer submission; a valid one ends the run
    5. Execute the remaining calls sequentially, appending each result
    6. Count the iteration
"""

import dataclasses
import logging
from contextlib import nullcontext
from typing import TYPE_CHECKING, Any, Optional, Sequence

from ..errors import RunCancelledError, ToolArgumentsError
from ..models import (
    AgentInput,
    AgentRunConfig,
    ContentSegment,
    ConversationTurn,
    Failed,
    FailureReason,
    Finished,
    IntermediateStep,
    ModelResponse,
    RunOutcome,
    ToolCallRequest,
    ToolCallResult,
)
from ..tools.descriptor import error_result
from ..tools.registry import ToolRegistry
from ..tracing import TracingContext
from .cancellation import CancellationToken
from .prompt import PromptAssembler, tool_calls_message, tool_result_message
from .structured_output import StructuredOutputGate
from .tool_defs import build_tool_definitions

if TYPE_CHECKING:
    from ..llm_call import ChatModel

logger = logging.getLogger(__name__)


def normalize_output(content: Any) -> Any:
    """
    Collapse provider-specific answer shapes into one value.

    A list of content segments that are all plain text is joined with
    newlines and trimmed; strings are trimmed; anything else is returned
    as-is.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list) and all(
        isinstance(part, ContentSegment) and part.type == "text" for part in content
    ):
        return "\n".join(part.text or "" for part in content).strip()
    return content


def _text_of(content: Any) -> Optional[str]:
    """Assistant text to keep alongside tool calls in the transcript."""
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        text = "\n".join(p.text for p in content if isinstance(p, ContentSegment) and p.text)
        return text or None
    return None


class OrchestrationLoop:
    """
    Runs the model/tool cycle for one input item.

    The registry is read-only and owned by the caller; the loop keeps its
    own transcript and step list, reset on every ``run``.
    """

    def __init__(
        self,
        llm: "ChatModel",
        registry: ToolRegistry,
        run_config: Optional[AgentRunConfig] = None,
        gate: Optional[StructuredOutputGate] = None,
        execution_id: Optional[str] = None,
        tracing_context: Optional[TracingContext] = None,
    ):
        self.llm = llm
        self.registry = registry
        self.run_config = run_config or AgentRunConfig()
        self.gate = gate or StructuredOutputGate()
        self.execution_id = execution_id
        self.tracing_context = tracing_context
        self.assembler = PromptAssembler(
            system_message=self.run_config.system_message,
            formatting_instructions=self.gate.formatting_instructions,
            passthrough_binary_images=self.run_config.passthrough_binary_images,
        )

        # State
        self.steps: list[IntermediateStep] = []
        self.messages: list[dict] = []
        self.model_calls = 0

    @property
    def _id_prefix(self) -> str:
        return f"[{self.execution_id}] " if self.execution_id else ""

    async def run(
        self,
        agent_input: AgentInput,
        history: Sequence[ConversationTurn] = (),
        cancel_token: Optional[CancellationToken] = None,
    ) -> RunOutcome:
        """
        Run the loop for one input item.

        Args:
            agent_input: The request and its attachments.
            history: Prior conversation turns, oldest first.
            cancel_token: External cancellation signal. A fresh token that
                never fires is used when omitted.

        Returns:
            Exactly one Finished or Failed outcome. Nothing is raised for
            model, tool or cancellation errors.
        """
        token = cancel_token or CancellationToken()
        self.steps = []
        self.model_calls = 0

        logger.debug("%sStarting run for item %d", self._id_prefix, agent_input.item_index)

        with self._span(
            "orchestration",
            metadata={
                "max_iterations": self.run_config.max_iterations,
                "execution_id": self.execution_id,
                "item_index": agent_input.item_index,
            },
            input={"request": agent_input.request_text},
        ) as orch_span:
            outcome = await self._run_loop(agent_input, history, token)
            if orch_span is not None:
                orch_span.set_output(
                    {
                        "model_calls": self.model_calls,
                        "steps_taken": len(self.steps),
                        "finished": outcome.is_finished,
                    }
                )
                if not outcome.is_finished:
                    orch_span.set_status("error")

        outcome.item_index = agent_input.item_index
        if self.run_config.return_intermediate_steps:
            outcome.intermediate_steps = list(self.steps)
        self._log_trace_summary(outcome)
        return outcome

    async def _run_loop(
        self,
        agent_input: AgentInput,
        history: Sequence[ConversationTurn],
        token: CancellationToken,
    ) -> RunOutcome:
        self.messages = self.assembler.build(
            agent_input.request_text, history, agent_input.attachments
        )
        tools = build_tool_definitions(self.registry)
        max_iterations = self.run_config.max_iterations
        iteration = 0

        while True:
            if token.cancelled:
                return self._cancelled(token)
            if iteration >= max_iterations:
                logger.warning(
                    "%sMax iterations (%d) reached without a final answer",
                    self._id_prefix,
                    max_iterations,
                )
                return Failed(
                    reason=FailureReason.MAX_ITERATIONS_EXCEEDED,
                    message=f"Agent stopped after max_iterations={max_iterations}",
                )

            try:
                response = await token.guard(self._call_model(tools, iteration + 1))
            except RunCancelledError:
                return self._cancelled(token)
            except Exception as e:
                if token.cancelled:
                    return self._cancelled(token)
                logger.error(
                    "%sModel call failed at iteration %d: %s", self._id_prefix, iteration + 1, e
                )
                return Failed(reason=FailureReason.MODEL_ERROR, message=str(e), error=e)

            if not response.has_tool_calls:
                return self._finalize(response)

            calls = response.tool_calls
            rejected: dict[int, ToolCallResult] = {}
            for index, call in enumerate(calls):
                if not self.gate.is_final_answer(call):
                    continue
                verdict = self.gate.check(call)
                if verdict.accepted:
                    self._record(call, ToolCallResult(tool_name=call.tool_name, output=""))
                    logger.debug("%sFinal answer accepted", self._id_prefix)
                    return Finished(output=verdict.payload)
                rejected[index] = verdict.error

            self.messages.append(tool_calls_message(calls, _text_of(response.content)))
            for index, call in enumerate(calls):
                if index in rejected:
                    result = rejected[index]
                else:
                    try:
                        result = await self._execute_tool(call, token)
                    except RunCancelledError:
                        return self._cancelled(token)
                    except ToolArgumentsError as e:
                        logger.error("%s%s", self._id_prefix, e)
                        return Failed(
                            reason=FailureReason.INVALID_TOOL_ARGUMENTS, message=str(e), error=e
                        )
                self._record(call, result)
                self.messages.append(tool_result_message(result))

            iteration += 1

    async def _call_model(self, tools: list[dict], iteration: int) -> ModelResponse:
        """Call the model once, inside a generation span when tracing."""
        self.model_calls += 1
        logger.debug("%sIteration %d: calling model", self._id_prefix, iteration)

        if self.tracing_context is None:
            return await self.llm.invoke(list(self.messages), tools)

        with self.tracing_context.generation(
            name=f"agent_iteration_{iteration}",
            model=getattr(self.llm, "model", "unknown"),
            input=list(self.messages),
            metadata={"tools": [t["function"]["name"] for t in tools]},
        ) as gen:
            try:
                response = await self.llm.invoke(list(self.messages), tools)
            except BaseException:
                gen.set_status("error")
                raise
            gen.set_output(str(response.content)[:2000] if response.content else "")
            if response.usage:
                gen.set_usage(**response.usage)
            return response

    async def _execute_tool(self, call: ToolCallRequest, token: CancellationToken) -> ToolCallResult:
        """
        Execute one tool call.

        Raises:
            RunCancelledError: The token fired before or during the call.
            ToolArgumentsError: The arguments are unrecoverable.
        """
        descriptor = self.registry.get(call.tool_name)
        if descriptor is None:
            logger.warning("%sUnknown tool: %s", self._id_prefix, call.tool_name)
            return error_result(
                call.tool_name, f"Unknown tool '{call.tool_name}'", call_id=call.call_id
            )

        logger.debug("%sExecuting tool '%s'", self._id_prefix, call.tool_name)
        with self._span(
            f"tool:{call.tool_name}",
            input={"arguments": call.raw_arguments},
            metadata={"origin": descriptor.origin.value},
        ) as span:
            try:
                result = await token.guard(descriptor.invoke(call.raw_arguments))
            except (RunCancelledError, ToolArgumentsError):
                raise
            except Exception as e:
                if token.cancelled:
                    raise RunCancelledError(token.reason or "cancelled") from e
                logger.error("%sTool '%s' raised: %s", self._id_prefix, call.tool_name, e)
                result = error_result(call.tool_name, str(e))
            if span is not None:
                span.set_output({"result": result.output[:500]})
                if result.is_error:
                    span.set_status("error")
        return dataclasses.replace(result, call_id=call.call_id)

    def _finalize(self, response: ModelResponse) -> RunOutcome:
        """Finish on a model answer that requested no tools."""
        if self.gate.fails_on_missing_output:
            logger.warning("%sModel finished without submitting a final answer", self._id_prefix)
            return Failed(
                reason=FailureReason.STRUCTURED_OUTPUT_MISSING,
                message="Model answered without calling the final-answer tool",
            )
        return Finished(output=normalize_output(response.content))

    def _record(self, call: ToolCallRequest, result: ToolCallResult) -> None:
        self.steps.append(
            IntermediateStep(step_number=len(self.steps) + 1, action=call, observation=result)
        )

    def _cancelled(self, token: CancellationToken) -> Failed:
        logger.info("%sRun cancelled: %s", self._id_prefix, token.reason)
        return Failed(reason=FailureReason.CANCELLED, message=token.reason or "cancelled")

    def _span(self, name: str, **kwargs):
        if self.tracing_context is None:
            return nullcontext(None)
        return self.tracing_context.span(name=name, **kwargs)

    def _log_trace_summary(self, outcome: RunOutcome) -> None:
        """Log a compact trace summary."""
        id_prefix = self._id_prefix
        logger.info("%s%s", id_prefix, "─" * 50)
        logger.info("%sTRACE SUMMARY (%d model calls)", id_prefix, self.model_calls)
        logger.info("%s%s", id_prefix, "─" * 50)
        for step in self.steps:
            observation = step.observation.output
            preview = (observation[:80] + "...") if len(observation) > 80 else observation
            if step.observation.is_error:
                logger.error(
                    "%sStep %d: %s failed:\n%s",
                    id_prefix,
                    step.step_number,
                    step.action.tool_name,
                    observation,
                )
            else:
                logger.info(
                    "%sStep %d: %s -> %s", id_prefix, step.step_number, step.action.tool_name, preview
                )
        if outcome.is_finished:
            logger.info("%s[FINAL] finished", id_prefix)
        else:
            logger.info("%s[FINAL] failed: %s", id_prefix, outcome.reason.value)
