"""
Tool Registry - single source of truth for the tools of one run.

Merges local and remote tools into one namespace. A registry is built
per run and is read-only afterwards; nothing is stored at class level.
"""

import logging
from typing import Iterator, Optional, Sequence, Union

from ..errors import DuplicateToolNameError, RegistryError
from .descriptor import ToolDescriptor, Toolkit
from .local import LocalTool
from .schema import SchemaNode

logger = logging.getLogger(__name__)

ToolSource = Union[ToolDescriptor, Toolkit, LocalTool]


def flatten_tools(sources: Sequence[ToolSource]) -> list[ToolDescriptor]:
    """Expand toolkits and wrap local tools, preserving order."""
    descriptors: list[ToolDescriptor] = []
    for source in sources:
        if isinstance(source, Toolkit):
            descriptors.extend(source.get_tools())
        elif isinstance(source, LocalTool):
            descriptors.append(source.to_descriptor())
        elif isinstance(source, ToolDescriptor):
            descriptors.append(source)
        else:
            raise RegistryError(f"Unsupported tool source: {source!r}")
    return descriptors


class ToolRegistry:
    """Read-only, name-indexed set of tool descriptors."""

    def __init__(self, descriptors: Sequence[ToolDescriptor]):
        self._tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._tools:
                raise DuplicateToolNameError(descriptor.name)
            self._tools[descriptor.name] = descriptor

    @classmethod
    def build(
        cls,
        local_tools: Sequence[ToolSource] = (),
        remote_tools: Sequence[ToolSource] = (),
        require_structured_output: bool = False,
        output_schema: Optional[SchemaNode] = None,
    ) -> "ToolRegistry":
        """
        Assemble the registry for one run.

        Args:
            local_tools: Local tools, descriptors or toolkits.
            remote_tools: Remote toolkits/descriptors, already listed.
            require_structured_output: Append the synthetic final-answer tool.
            output_schema: Schema of the final answer; required when
                ``require_structured_output`` is set.

        Raises:
            DuplicateToolNameError: Two tools share a name.
            RegistryError: A source is unsupported or the output schema is
                missing.
        """
        descriptors = flatten_tools(local_tools) + flatten_tools(remote_tools)

        if require_structured_output:
            if output_schema is None:
                raise RegistryError(
                    "Structured output is required but no output schema was given"
                )
            # Deferred: structured_output imports from this package.
            from ..orchestration.structured_output import final_answer_descriptor

            descriptors.append(final_answer_descriptor(output_schema))

        registry = cls(descriptors)
        logger.debug("Tool registry built with %d tools: %s", len(registry), registry.names)
        return registry

    def get(self, name: str) -> Optional[ToolDescriptor]:
        """Get a tool by name."""
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self.descriptors)

    def __len__(self) -> int:
        return len(self._tools)

    def tool_definitions(self) -> list[dict]:
        """OpenAI function-calling definitions for every tool."""
        return [descriptor.to_openai_tool() for descriptor in self._tools.values()]

    def get_tools_summary(self) -> str:
        """Get formatted summary of all tools for prompts."""
        return "\n".join(
            f"- {name}: {tool.description}" for name, tool in self._tools.items()
        )
