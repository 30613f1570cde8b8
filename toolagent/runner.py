"""
ToolAgent runner.

Runs the agent for input items: validates the run configuration, opens
the remote tool sessions of the run, builds its tool registry, loads
conversation memory, drives the orchestration loop and records the
exchange. Batches of items run concurrently, one independent run per
item.
"""

import asyncio
import dataclasses
import logging
import uuid
from contextlib import AsyncExitStack
from typing import Any, Optional, Sequence, Union

from .config import config, configure_logging
from .config_loader import load_app_config
from .errors import (
    AgentRunFailedError,
    ConfigurationError,
    ConnectError,
    InvalidMaxIterationsError,
    RunCancelledError,
    ToolAgentError,
)
from .llm_call import ChatModel, LLMClient
from .memory import MemoryAdapter, WindowBufferMemory
from .models import (
    AgentInput,
    AgentRunConfig,
    AppConfig,
    BatchConfig,
    ConversationTurn,
    Failed,
    FailureReason,
    RemoteServerConfig,
    RunOutcome,
)
from .orchestration import CancellationToken, OrchestrationLoop, StructuredOutputGate
from .tools.descriptor import Toolkit, stringify_output
from .tools.registry import ToolRegistry, ToolSource
from .tools.remote import RemoteToolClient
from .tools.schema import SchemaNode
from .tracing import TracingContext, get_tracing_client, init_tracing_client

logger = logging.getLogger(__name__)

RemoteSource = Union[RemoteToolClient, RemoteServerConfig]


def validate_run_config(run_config: AgentRunConfig) -> None:
    """
    Raises:
        InvalidMaxIterationsError: max_iterations is below 1.
    """
    if run_config.max_iterations < 1:
        raise InvalidMaxIterationsError(run_config.max_iterations)


class AgentRunner:
    """
    Runs the agent over input items.

    Holds only immutable settings and collaborators; every run builds its
    own registry, remote sessions and loop, so runs never share state
    except through the memory adapter.
    """

    def __init__(
        self,
        llm: ChatModel,
        local_tools: Sequence[ToolSource] = (),
        remote_tools: Sequence[RemoteSource] = (),
        memory: Optional[MemoryAdapter] = None,
        run_config: Optional[AgentRunConfig] = None,
        output_schema: Union[SchemaNode, dict, None] = None,
        batch_config: Optional[BatchConfig] = None,
        tracing_enabled: bool = True,
    ):
        """
        Args:
            llm: Chat model used for every run.
            local_tools: Local tools, descriptors or toolkits.
            remote_tools: Remote tool providers, as clients or server configs.
            memory: Conversation memory; runs without a session key skip it.
            run_config: Per-run agent settings.
            output_schema: Final answer schema (SchemaNode or JSON Schema),
                used when ``run_config.require_structured_output`` is set.
            batch_config: Defaults for ``run_batch``.
            tracing_enabled: Trace runs when a Langfuse client is enabled.
        """
        self.llm = llm
        self.local_tools = list(local_tools)
        self.remote_tools = list(remote_tools)
        self.memory = memory
        self.run_config = run_config or AgentRunConfig()
        if isinstance(output_schema, dict):
            output_schema = SchemaNode.from_json_schema(output_schema)
        self.output_schema = output_schema
        self.batch_config = batch_config or BatchConfig()
        self.tracing_enabled = tracing_enabled

    @classmethod
    def from_config(
        cls,
        app_config: Optional[AppConfig] = None,
        local_tools: Sequence[ToolSource] = (),
        output_schema: Union[SchemaNode, dict, None] = None,
        llm: Optional[ChatModel] = None,
        memory: Optional[MemoryAdapter] = None,
    ) -> "AgentRunner":
        """
        Build a runner from the YAML application config.

        The chat model, remote servers, memory and Langfuse tracing come
        from the config unless given explicitly.
        """
        app_config = app_config or load_app_config()

        if llm is None:
            llm = LLMClient(
                base_url=app_config.model.base_url,
                model=app_config.model.model,
                api_key=app_config.model.api_key or None,
                temperature=app_config.model.temperature,
                max_tokens=app_config.model.max_tokens,
                tool_call_format=app_config.model.tool_call_format,
            )

        if memory is None and app_config.memory.enabled:
            memory = WindowBufferMemory(app_config.memory.context_window_length)

        if get_tracing_client() is None:
            langfuse = app_config.langfuse if app_config.langfuse.is_configured else config.langfuse
            if langfuse.public_key and langfuse.secret_key:
                init_tracing_client(
                    public_key=langfuse.public_key,
                    secret_key=langfuse.secret_key,
                    host=langfuse.host,
                    debug=langfuse.debug,
                )

        return cls(
            llm=llm,
            local_tools=local_tools,
            remote_tools=list(app_config.remote_servers.values()),
            memory=memory,
            run_config=app_config.agent.to_run_config(
                require_structured_output=output_schema is not None
            ),
            output_schema=output_schema,
            batch_config=app_config.batch,
        )

    async def run(
        self,
        agent_input: Union[AgentInput, str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> RunOutcome:
        """
        Run the agent for one input item.

        Never raises for run failures: configuration, connection, memory,
        model, argument, budget and cancellation problems are all reported
        as a Failed outcome carrying the item index.
        """
        if isinstance(agent_input, str):
            agent_input = AgentInput(request_text=agent_input)
        token = cancel_token or CancellationToken()
        execution_id = uuid.uuid4().hex[:8]
        id_prefix = f"[{execution_id}] "

        tracing_context = self._tracing_context(execution_id, agent_input)
        if tracing_context is not None:
            tracing_context.start_trace(
                name="agent_run",
                request=agent_input.request_text,
                metadata={"item_index": agent_input.item_index},
            )

        outcome = await self._run(agent_input, token, execution_id, tracing_context)
        outcome.item_index = agent_input.item_index

        if outcome.is_finished:
            logger.info("%sItem %d finished", id_prefix, agent_input.item_index)
        else:
            logger.warning(
                "%sItem %d failed (%s): %s",
                id_prefix,
                agent_input.item_index,
                outcome.reason.value,
                outcome.message,
            )
        if tracing_context is not None:
            tracing_context.end_trace(
                output=stringify_output(outcome.output) if outcome.is_finished else outcome.message,
                status="success" if outcome.is_finished else "error",
            )
        return outcome

    async def _run(
        self,
        agent_input: AgentInput,
        token: CancellationToken,
        execution_id: str,
        tracing_context: Optional[TracingContext],
    ) -> RunOutcome:
        id_prefix = f"[{execution_id}] "
        try:
            validate_run_config(self.run_config)
        except ConfigurationError as e:
            logger.error("%s%s", id_prefix, e)
            return Failed(reason=FailureReason.CONFIGURATION_ERROR, message=str(e), error=e)

        if token.cancelled:
            return Failed(reason=FailureReason.CANCELLED, message=token.reason or "cancelled")

        async with AsyncExitStack() as stack:
            try:
                remote_toolkits = await self._discover_remote_tools(stack, token)
                registry = ToolRegistry.build(
                    local_tools=self.local_tools,
                    remote_tools=remote_toolkits,
                    require_structured_output=self.run_config.require_structured_output,
                    output_schema=self.output_schema,
                )
            except ConfigurationError as e:
                logger.error("%sConfiguration error: %s", id_prefix, e)
                return Failed(reason=FailureReason.CONFIGURATION_ERROR, message=str(e), error=e)
            except ConnectError as e:
                logger.error("%sConnection error: %s", id_prefix, e)
                return Failed(reason=FailureReason.CONNECTION_ERROR, message=str(e), error=e)
            except RunCancelledError:
                return Failed(reason=FailureReason.CANCELLED, message=token.reason or "cancelled")

            logger.debug("%sRegistry: %s", id_prefix, ", ".join(registry.names))

            if token.cancelled:
                return Failed(reason=FailureReason.CANCELLED, message=token.reason or "cancelled")

            try:
                history = await self._load_history(agent_input)
            except Exception as e:
                logger.error("%sFailed to load memory: %s", id_prefix, e)
                return Failed(reason=FailureReason.MEMORY_ERROR, message=str(e), error=e)

            gate = StructuredOutputGate(
                output_schema=(
                    self.output_schema if self.run_config.require_structured_output else None
                ),
                policy=self.run_config.missing_structured_output,
            )
            loop = OrchestrationLoop(
                llm=self.llm,
                registry=registry,
                run_config=self.run_config,
                gate=gate,
                execution_id=execution_id,
                tracing_context=tracing_context,
            )
            outcome = await loop.run(agent_input, history, token)

        if outcome.is_finished:
            try:
                await self._save_memory(agent_input, outcome.output)
            except Exception as e:
                logger.error("%sFailed to save memory: %s", id_prefix, e)
        return outcome

    async def _discover_remote_tools(
        self, stack: AsyncExitStack, token: CancellationToken
    ) -> list[Toolkit]:
        """
        Connect every remote provider for this run and list its tools.

        All endpoints are validated before any connection is opened.
        Sessions are registered on ``stack`` and closed with it.

        Raises:
            InvalidEndpointError: A configured endpoint is malformed.
            ConnectError: A provider cannot be reached or listed.
            RunCancelledError: The token fired while connecting or listing.
        """
        clients = [
            RemoteToolClient.from_config(source)
            if isinstance(source, RemoteServerConfig)
            else source.for_run()
            for source in self.remote_tools
        ]
        toolkits: list[Toolkit] = []
        for client in clients:
            if token.cancelled:
                raise RunCancelledError(token.reason or "cancelled")
            if not client.connected:
                await stack.enter_async_context(client)
            try:
                toolkits.append(await token.guard(client.as_toolkit()))
            except ToolAgentError:
                raise
            except Exception as e:
                logger.error("Failed to list remote tools at %s: %s", client.endpoint, e)
                raise ConnectError(client.endpoint, f"tool listing failed: {e}") from e
        return toolkits

    async def _load_history(self, agent_input: AgentInput) -> list[ConversationTurn]:
        if self.memory is None or not agent_input.session_key:
            return []
        return await self.memory.load_turns(agent_input.session_key)

    async def _save_memory(self, agent_input: AgentInput, output: Any) -> None:
        if self.memory is None or not agent_input.session_key:
            return
        await self.memory.save_turn(
            agent_input.session_key, agent_input.request_text, stringify_output(output)
        )

    def _tracing_context(
        self, execution_id: str, agent_input: AgentInput
    ) -> Optional[TracingContext]:
        if not self.tracing_enabled:
            return None
        client = get_tracing_client()
        if client is None or not client.enabled:
            return None
        return TracingContext(execution_id=execution_id, session_id=agent_input.session_key)

    async def run_batch(
        self,
        inputs: Sequence[Union[AgentInput, str]],
        cancel_token: Optional[CancellationToken] = None,
        batch_size: Optional[int] = None,
        delay_between_batches: Optional[float] = None,
        continue_on_fail: Optional[bool] = None,
    ) -> list[RunOutcome]:
        """
        Run many input items, ``batch_size`` at a time.

        Items of one batch run concurrently as independent runs. Each item
        gets its position in ``inputs`` as its item index, and outcomes are
        returned in the same order. Unset options fall back to the runner's
        batch config.

        Raises:
            AgentRunFailedError: An item failed and ``continue_on_fail`` is
                off. Items of later batches are not started.
        """
        batch_size = batch_size if batch_size is not None else self.batch_config.batch_size
        if delay_between_batches is None:
            delay_between_batches = self.batch_config.delay_between_batches
        if continue_on_fail is None:
            continue_on_fail = self.batch_config.continue_on_fail
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        items = [
            AgentInput(request_text=item, item_index=index)
            if isinstance(item, str)
            else dataclasses.replace(item, item_index=index)
            for index, item in enumerate(inputs)
        ]

        outcomes: list[RunOutcome] = []
        for start in range(0, len(items), batch_size):
            if start and delay_between_batches > 0:
                await asyncio.sleep(delay_between_batches)
            batch = items[start : start + batch_size]
            logger.debug("Running items %d-%d", start, start + len(batch) - 1)
            results = await asyncio.gather(*(self.run(item, cancel_token) for item in batch))
            if not continue_on_fail:
                for outcome in results:
                    if not outcome.is_finished:
                        raise AgentRunFailedError(outcome)
            outcomes.extend(results)
        return outcomes

    def run_sync(self, agent_input: Union[AgentInput, str]) -> RunOutcome:
        """Blocking wrapper around ``run`` for scripts."""
        return asyncio.run(self.run(agent_input))


def run_query(
    query: str,
    local_tools: Sequence[ToolSource] = (),
    config_path: Optional[str] = None,
) -> RunOutcome:
    """
    Convenience function to run a single query with the YAML config.

    Args:
        query: The user's request
        local_tools: Local tools available to the agent
        config_path: Config file; defaults to TOOLAGENT_CONFIG_PATH or
            config/config.yaml

    Returns:
        The run outcome
    """
    app_config = load_app_config(config_path, reload=config_path is not None)
    configure_logging(app_config.log_level)
    runner = AgentRunner.from_config(app_config, local_tools=local_tools)
    outcome = runner.run_sync(query)

    tracing_client = get_tracing_client()
    if tracing_client is not None:
        tracing_client.flush()
    return outcome
