#!/usr/bin/env python
# coding=utf-8

# Copyright 2024 The HuggingFace Inc. team. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
import json
import keyword
import re
from collections.abc import Container
from dataclasses import asdict, dataclass, field, is_dataclass
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from agentloop.monitoring import AgentLogger


__all__ = [
    "AgentError",
    "AgentExecutionError",
    "AgentInterruptedError",
    "AgentMaxStepsError",
    "AgentStepNotImplementedError",
    "AgentToolExecutionError",
    "AgentToolNotFoundError",
    "ParsedToolCall",
    "extract_code_blocks",
    "extract_json_block",
    "parse_code_tool_call",
    "parse_json_tool_call",
]


class AgentError(Exception):
    """Base class for other agent-related exceptions"""

    def __init__(self, message, logger: "AgentLogger"):
        super().__init__(message)
        self.message = message
        logger.log_error(message)

    def dict(self) -> dict[str, str]:
        return {"type": self.__class__.__name__, "message": str(self.message)}


class AgentExecutionError(AgentError):
    """Exception raised for errors in execution in the agent"""

    pass


class AgentToolNotFoundError(AgentExecutionError):
    """Exception raised when the model asks for a tool the agent does not have"""

    pass


class AgentToolExecutionError(AgentExecutionError):
    """Exception raised for errors when executing a tool"""

    pass


class AgentMaxStepsError(AgentExecutionError):
    """Exception raised when the step budget is exhausted without a final answer"""

    pass


class AgentStepNotImplementedError(AgentExecutionError):
    """Exception raised when an agent has neither a step strategy nor its own `step` implementation"""

    pass


class AgentInterruptedError(AgentExecutionError):
    """Exception raised when a run is interrupted through `agent.interrupt()`"""

    pass


def is_valid_name(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name) if isinstance(name, str) else False


def make_json_serializable(obj: Any) -> Any:
    """Recursive function to make objects JSON serializable"""
    if obj is None:
        return None
    elif isinstance(obj, (str, int, float, bool)):
        return obj
    elif isinstance(obj, (list, tuple, set)):
        return [make_json_serializable(item) for item in obj]
    elif isinstance(obj, dict):
        return {str(k): make_json_serializable(v) for k, v in obj.items()}
    elif is_dataclass(obj) and not isinstance(obj, type):
        return make_json_serializable(asdict(obj))
    elif hasattr(obj, "__dict__"):
        # For custom objects, convert their __dict__ to a serializable format
        return {"_type": obj.__class__.__name__, **{k: make_json_serializable(v) for k, v in obj.__dict__.items()}}
    else:
        # For any other type, convert to string
        return str(obj)


MAX_LENGTH_TRUNCATE_CONTENT = 20000


def truncate_content(content: str, max_length: int = MAX_LENGTH_TRUNCATE_CONTENT) -> str:
    if len(content) <= max_length:
        return content
    else:
        return (
            content[: max_length // 2]
            + f"\n..._This content has been truncated to stay below {max_length} characters_...\n"
            + content[-max_length // 2 :]
        )


@dataclass
class ParsedToolCall:
    """A tool invocation recovered from free-form model text."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


def extract_json_block(text: str) -> str:
    """Returns the content of the first fenced block of `text`, preferring a ```json block.

    The opening fence line (including any language tag) is skipped and the content stops at the next
    fence. Returns an empty string when there is no complete fenced block.
    """
    start = text.find("```json")
    if start == -1:
        start = text.find("```")
    if start == -1:
        return ""

    newline = text.find("\n", start)
    if newline == -1:
        return ""
    start = newline + 1

    end = text.find("```", start)
    if end == -1:
        return ""
    return text[start:end].strip()


def parse_json_tool_call(text: str) -> ParsedToolCall | None:
    """Parses the `{"tool": <name>, "args": {...}}` wire format out of a fenced block.

    Returns `None` when there is no block, when the block is not a JSON object of that shape, or when
    the tool name is empty: the caller then treats the whole text as a final answer.
    """
    json_blob = extract_json_block(text)
    if not json_blob:
        return None
    try:
        tool_call = json.loads(json_blob, strict=False)
    except json.JSONDecodeError:
        return None
    if not isinstance(tool_call, dict):
        return None

    tool_name = tool_call.get("tool")
    arguments = tool_call.get("args")
    if not isinstance(tool_name, str) or not tool_name:
        return None
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        return None
    return ParsedToolCall(name=tool_name, arguments=arguments)


CODE_BLOCK_PATTERN = re.compile(r"```(?:\w+)?\n(.*?)```", re.DOTALL)
CALL_EXPRESSION_PATTERN = re.compile(r"(\w+)\s*\((.*?)\)")
KEYWORD_ARGUMENT_PATTERN = re.compile(r"""(\w+)\s*=\s*(?:"([^"]*)"|'([^']*)'|(\d+(?:\.\d+)?))""")


def extract_code_blocks(text: str) -> list[str]:
    """Returns the contents of all fenced code blocks in `text`, in order of appearance."""
    return CODE_BLOCK_PATTERN.findall(text)


def parse_code_tool_call(code: str, tool_names: Container[str]) -> ParsedToolCall | None:
    """Matches a single flat call expression `identifier(name=literal, ...)` in a code block.

    Only the first call-shaped expression of the block is considered, and it counts only if the
    identifier is one of `tool_names`. Arguments must be keyword arguments whose value is a double-quoted
    string, a single-quoted string, or an integer/decimal literal; anything else is dropped from the
    argument mapping without failing the parse. Nested calls and expressions are not evaluated.
    """
    match = CALL_EXPRESSION_PATTERN.search(code)
    if match is None:
        return None

    tool_name, arguments_source = match.group(1), match.group(2)
    if tool_name not in tool_names:
        return None

    arguments: dict[str, Any] = {}
    for argument_match in KEYWORD_ARGUMENT_PATTERN.finditer(arguments_source):
        argument_name, double_quoted, single_quoted, number = argument_match.groups()
        if double_quoted is not None:
            arguments[argument_name] = double_quoted
        elif single_quoted is not None:
            arguments[argument_name] = single_quoted
        elif "." in number:
            arguments[argument_name] = float(number)
        else:
            arguments[argument_name] = int(number)
    return ParsedToolCall(name=tool_name, arguments=arguments)
