"""
Agent orchestration.

The model/tool loop for a single run, plus the pieces it is built from:
prompt assembly, the structured-output gate, the cancellation token and
tool definition rendering.
"""

from .cancellation import CancellationToken
from .structured_output import FINAL_ANSWER_TOOL_NAME, StructuredOutputGate
from .prompt import PromptAssembler
from .tool_defs import build_tool_definitions, build_tools_prompt_block
from .loop import OrchestrationLoop, normalize_output

__all__ = [
    "CancellationToken",
    "FINAL_ANSWER_TOOL_NAME",
    "StructuredOutputGate",
    "PromptAssembler",
    "build_tool_definitions",
    "build_tools_prompt_block",
    "OrchestrationLoop",
    "normalize_output",
]
