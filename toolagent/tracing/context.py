"""
Run-scoped tracing on top of Langfuse SDK v3 observations.

Every observation below the root is opened with an explicit
``TraceContext`` pointing at the root span, so nesting does not depend on
the ambient OpenTelemetry context (which asyncio tasks do not share
reliably). With tracing disabled the context managers still yield
objects whose setters are no-ops.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

from langfuse.types import TraceContext

from .client import get_tracing_client

logger = logging.getLogger(__name__)


@dataclass
class _Observation:
    """Open and close one Langfuse observation, never raising."""

    name: str
    enabled: bool = False
    _trace_context: Optional[TraceContext] = field(default=None, repr=False)
    _scope: Any = field(default=None, repr=False)
    _observation: Any = field(default=None, repr=False)
    _opened_at: float = field(default=0.0, repr=False)
    _status: str = field(default="success", repr=False)

    def _start_kwargs(self) -> dict:
        raise NotImplementedError

    def _end_kwargs(self) -> dict:
        return {}

    def _end_metadata(self) -> dict:
        return {}

    def start(self) -> None:
        tracer = get_tracing_client() if self.enabled else None
        if tracer is None or tracer.client is None:
            return
        self._opened_at = time.perf_counter()
        try:
            self._scope = tracer.client.start_as_current_observation(
                name=self.name,
                trace_context=self._trace_context,
                **self._start_kwargs(),
            )
            self._observation = self._scope.__enter__()
        except Exception as e:
            logger.warning("Could not open observation '%s': %s", self.name, e)
            self._scope = self._observation = None

    def end(self) -> None:
        if self._observation is None:
            return
        elapsed_ms = round((time.perf_counter() - self._opened_at) * 1000, 2)
        metadata = {"status": self._status, "duration_ms": elapsed_ms}
        metadata.update(self._end_metadata())
        try:
            self._observation.update(metadata=metadata, **self._end_kwargs())
            self._scope.__exit__(None, None, None)
        except Exception as e:
            logger.warning("Could not close observation '%s': %s", self.name, e)
        finally:
            self._observation = None

    def set_status(self, status: str) -> None:
        self._status = status


@dataclass
class SpanContext(_Observation):
    """Span around a tool call or other non-model step."""

    metadata: Optional[dict] = None
    input: Optional[dict] = None
    output: Optional[dict] = field(default=None, repr=False)

    def _start_kwargs(self) -> dict:
        return {"as_type": "span", "input": self.input, "metadata": self.metadata}

    def _end_kwargs(self) -> dict:
        return {"output": self.output} if self.output else {}

    def set_output(self, output: dict) -> None:
        self.output = output


_USAGE_KEYS = {
    "prompt_tokens": "promptTokens",
    "completion_tokens": "completionTokens",
    "total_tokens": "totalTokens",
}


@dataclass
class GenerationContext(_Observation):
    """Generation around one chat model call."""

    model: str = ""
    input: Optional[Any] = None
    metadata: Optional[dict] = None
    model_parameters: Optional[dict] = None
    output: Optional[str] = field(default=None, repr=False)
    usage: dict = field(default_factory=dict, repr=False)

    def _start_kwargs(self) -> dict:
        return {
            "as_type": "generation",
            "model": self.model,
            "model_parameters": self.model_parameters,
            "input": self.input,
            "metadata": self.metadata,
        }

    def _end_kwargs(self) -> dict:
        kwargs: dict[str, Any] = {}
        if self.output is not None:
            kwargs["output"] = self.output
        if self.usage:
            kwargs["usage"] = self.usage
        return kwargs

    def set_output(self, output: str) -> None:
        self.output = output

    def set_usage(self, **counts: Optional[int]) -> None:
        """Record token counts given as prompt_tokens, completion_tokens, total_tokens."""
        self.usage = {
            _USAGE_KEYS[key]: value
            for key, value in counts.items()
            if key in _USAGE_KEYS and value is not None
        }


@dataclass
class _RootSpan(_Observation):
    """The span every other observation of a run hangs off."""

    request: Optional[str] = None
    metadata: Optional[dict] = None
    output: Any = None
    closing_metadata: dict = field(default_factory=dict, repr=False)

    def _start_kwargs(self) -> dict:
        return {
            "as_type": "span",
            "input": {"request": self.request} if self.request else None,
            "metadata": self.metadata,
        }

    def _end_kwargs(self) -> dict:
        return {"output": self.output}

    def _end_metadata(self) -> dict:
        return self.closing_metadata


@dataclass
class TracingContext:
    """
    Tracing context for one agent run or batch.

    ``start_trace`` opens a root span; ``span`` and ``generation`` nest
    observations under it through an explicit ``TraceContext``.
    """

    execution_id: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    _enabled: bool = field(default=False, repr=False)
    _root: Optional[_RootSpan] = field(default=None, repr=False)

    def __post_init__(self):
        client = get_tracing_client()
        self._enabled = client is not None and client.enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_trace(
        self,
        name: str = "agent_run",
        request: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Open the root span and tag the trace with session and user."""
        root = _RootSpan(
            name=name,
            enabled=self._enabled,
            request=request,
            metadata={"execution_id": self.execution_id, **(metadata or {})},
        )
        root.start()
        if root._observation is None:
            return
        self._root = root
        try:
            root._observation.update_trace(user_id=self.user_id, session_id=self.session_id)
        except Exception as e:
            logger.warning("[%s] Failed to tag trace: %s", self.execution_id, e)

    def get_trace_context(self) -> Optional[TraceContext]:
        """Parent reference for nested observations, None before start_trace."""
        if self._root is None:
            return None
        trace_id = getattr(self._root._observation, "trace_id", None)
        span_id = getattr(self._root._observation, "id", None)
        if not trace_id or not span_id:
            return None
        return TraceContext(trace_id=trace_id, parent_span_id=span_id)

    def end_trace(
        self,
        output: Optional[Any] = None,
        status: str = "success",
        metadata: Optional[dict] = None,
    ) -> None:
        if self._root is None:
            return
        self._root.output = output
        self._root.closing_metadata = metadata or {}
        self._root.set_status(status)
        self._root.end()

    @contextmanager
    def _observe(self, observation: _Observation) -> Generator[Any, None, None]:
        observation.start()
        try:
            yield observation
        finally:
            observation.end()

    def span(
        self,
        name: str,
        metadata: Optional[dict] = None,
        input: Optional[dict] = None,
    ):
        """Context manager yielding a SpanContext (tool call, sub-step)."""
        return self._observe(
            SpanContext(
                name=name,
                enabled=self._enabled,
                metadata=metadata,
                input=input,
                _trace_context=self.get_trace_context(),
            )
        )

    def generation(
        self,
        name: str,
        model: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
        model_parameters: Optional[dict] = None,
    ):
        """Context manager yielding a GenerationContext for one model call."""
        return self._observe(
            GenerationContext(
                name=name,
                model=model,
                enabled=self._enabled,
                input=input,
                metadata=metadata,
                model_parameters=model_parameters,
                _trace_context=self.get_trace_context(),
            )
        )
