"""
Local capability adapter.

Wraps a host Python function as a ``ToolDescriptor``. Models frequently
return loosely structured arguments, so argument resolution is lenient:

1. strict parse against the tool schema
2. permissive JSON-object parse of the raw text
3. single-field fallback: the whole text becomes the only field's value
4. otherwise ``ToolArgumentsError`` (the run fails before the tool executes)

Exceptions raised by the function itself never escape: they are returned
to the model as an error ``ToolCallResult``.
"""

import asyncio
import inspect
import json
import logging
import re
import typing
from typing import Any, Callable, Optional, Union

from pydantic import TypeAdapter, ValidationError, create_model

from ..errors import ToolArgumentsError
from ..models import ToolCallResult
from .descriptor import (
    RawArguments,
    ToolDescriptor,
    ToolOrigin,
    error_result,
    stringify_output,
)
from .schema import SchemaNode

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def loads_permissive(text: str) -> Any:
    """
    Parse JSON out of model text, tolerating code fences and surrounding prose.

    Returns None when no JSON value can be recovered.
    """
    candidate = text.strip()
    fenced = _CODE_FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    start, end = candidate.find("{"), candidate.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(candidate[start : end + 1])
        except json.JSONDecodeError:
            return None
    return None


def resolve_arguments(
    tool_name: str,
    schema: SchemaNode,
    raw: RawArguments,
    adapter: Optional[TypeAdapter] = None,
) -> dict:
    """
    Map raw model arguments onto ``schema``.

    Raises:
        ToolArgumentsError: No interpretation of the payload fits the schema.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raw = {}

    adapter = adapter or schema.adapter(f"{tool_name}_args")

    # 1. Strict parse
    try:
        if isinstance(raw, str):
            parsed = schema.validate_json(raw, adapter)
        else:
            parsed = schema.validate(raw, adapter)
        if isinstance(parsed, dict):
            return parsed
        strict_error = f"expected an object, got {type(parsed).__name__}"
    except ValidationError as e:
        strict_error = str(e)

    # 2. Permissive JSON object
    candidate = raw if isinstance(raw, dict) else loads_permissive(raw)
    if isinstance(candidate, dict):
        logger.debug("Tool '%s': strict argument parse failed, using raw object", tool_name)
        try:
            return schema.validate(candidate, adapter)
        except ValidationError:
            return dict(candidate)

    # 3. Single-field fallback
    field_name = schema.single_field
    if field_name is not None and isinstance(raw, str):
        logger.debug(
            "Tool '%s': treating raw text as value of field '%s'", tool_name, field_name
        )
        try:
            return schema.validate({field_name: raw}, adapter)
        except ValidationError:
            return {field_name: raw}

    # 4. Nothing fits
    raise ToolArgumentsError(tool_name, raw, strict_error)


def schema_from_signature(func: Callable) -> SchemaNode:
    """Derive an object schema from a function signature via pydantic."""
    signature = inspect.signature(func)
    try:
        hints = typing.get_type_hints(func)
    except (NameError, TypeError):
        hints = {}

    fields: dict[str, Any] = {}
    for param in signature.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if param.name.startswith("_"):
            continue
        annotation = hints.get(param.name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param.name] = (annotation, default)

    model = create_model(f"{func.__name__}_arguments", **fields)
    return SchemaNode.from_json_schema(model.model_json_schema())


def _first_paragraph(doc: Optional[str]) -> str:
    if not doc:
        return ""
    return doc.strip().split("\n\n", 1)[0].replace("\n", " ").strip()


class LocalTool:
    """A host function exposed to the model as a tool."""

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[..., Any],
        schema: Optional[SchemaNode] = None,
        formatter: Optional[Callable[[Any], str]] = None,
    ):
        self.name = name
        self.description = description
        self.func = func
        self.schema = schema or schema_from_signature(func)
        self.formatter = formatter or stringify_output
        self._adapter = self.schema.adapter(f"{name}_args")
        self._accepts_kwargs, self._param_names = self._inspect_params(func)

    @staticmethod
    def _inspect_params(func: Callable) -> tuple[bool, set[str]]:
        try:
            params = inspect.signature(func).parameters.values()
        except (TypeError, ValueError):
            return True, set()
        accepts_kwargs = any(p.kind == p.VAR_KEYWORD for p in params)
        return accepts_kwargs, {p.name for p in params}

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)

    def __repr__(self) -> str:
        return f"LocalTool(name={self.name!r})"

    def to_descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            schema=self.schema,
            origin=ToolOrigin.LOCAL,
            invoke=self.invoke,
        )

    async def invoke(self, raw_arguments: RawArguments) -> ToolCallResult:
        """
        Resolve arguments and call the function.

        Raises:
            ToolArgumentsError: Arguments are unrecoverable. Raised before
                the function runs.
        """
        args = resolve_arguments(self.name, self.schema, raw_arguments, self._adapter)
        if not self._accepts_kwargs:
            dropped = set(args) - self._param_names
            if dropped:
                logger.debug("Tool '%s': ignoring unknown arguments %s", self.name, sorted(dropped))
            args = {k: v for k, v in args.items() if k in self._param_names}

        try:
            if inspect.iscoroutinefunction(self.func):
                value = await self.func(**args)
            else:
                value = await asyncio.to_thread(self.func, **args)
            return ToolCallResult(tool_name=self.name, output=self.formatter(value))
        except Exception as e:
            logger.error("Tool '%s' execution failed: %s", self.name, e)
            return error_result(self.name, str(e))


def local_tool(
    func: Optional[Callable] = None,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    schema: Optional[SchemaNode] = None,
    formatter: Optional[Callable[[Any], str]] = None,
) -> Union[LocalTool, Callable[[Callable], LocalTool]]:
    """
    Decorator turning a function into a ``LocalTool``.

    Usable bare (``@local_tool``) or with options
    (``@local_tool(name="lookup")``). The schema is derived from the
    signature and the description from the docstring's first paragraph.
    """

    def wrap(fn: Callable) -> LocalTool:
        return LocalTool(
            name=name or fn.__name__,
            description=description or _first_paragraph(fn.__doc__) or fn.__name__,
            func=fn,
            schema=schema,
            formatter=formatter,
        )

    if func is not None:
        return wrap(func)
    return wrap
