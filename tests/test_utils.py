# coding=utf-8
# Copyright 2024 HuggingFace Inc.
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
from dataclasses import dataclass

import pytest

from agentloop.monitoring import AgentLogger, LogLevel
from agentloop.utils import (
    AgentError,
    AgentMaxStepsError,
    AgentToolNotFoundError,
    ParsedToolCall,
    extract_code_blocks,
    extract_json_block,
    is_valid_name,
    make_json_serializable,
    parse_code_tool_call,
    parse_json_tool_call,
    truncate_content,
)


class TestExtractJsonBlock:
    def test_json_block(self):
        assert extract_json_block('Calling:\n```json\n{"tool": "echo"}\n```') == '{"tool": "echo"}'

    def test_prefers_json_block(self):
        text = "```py\nx = 1\n```\nand\n```json\n{}\n```"
        assert extract_json_block(text) == "{}"

    def test_plain_block(self):
        assert extract_json_block("```\n[1, 2]\n```") == "[1, 2]"

    @pytest.mark.parametrize("text", ["no block at all", "```json", '```json\n{"tool": "echo"}'])
    def test_no_complete_block(self, text):
        assert extract_json_block(text) == ""


class TestParseJsonToolCall:
    def test_valid_call(self):
        text = 'I will echo.\n```json\n{\n  "tool": "echo",\n  "args": {"arg1": "hi"}\n}\n```'
        assert parse_json_tool_call(text) == ParsedToolCall(name="echo", arguments={"arg1": "hi"})

    def test_call_without_arguments(self):
        assert parse_json_tool_call('```json\n{"tool": "now"}\n```') == ParsedToolCall(name="now", arguments={})

    @pytest.mark.parametrize(
        "text",
        [
            "The answer is 42.",
            "```json\n{not json}\n```",
            "```json\n[1, 2, 3]\n```",
            '```json\n{"tool": "", "args": {}}\n```',
            '```json\n{"args": {"a": 1}}\n```',
            '```json\n{"tool": "echo", "args": ["hi"]}\n```',
        ],
    )
    def test_not_a_tool_call(self, text):
        assert parse_json_tool_call(text) is None


class TestCodeBlocks:
    def test_extract_code_blocks(self):
        text = "First:\n```py\na = 1\n```\nthen\n```\nb = 2\n```\nunclosed ```py\nc = 3"
        assert extract_code_blocks(text) == ["a = 1\n", "b = 2\n"]

    def test_keyword_arguments(self):
        tool_call = parse_code_tool_call("""search(query="cats", page=2, ratio=0.5, lang='en')""", {"search"})
        assert tool_call == ParsedToolCall(
            name="search", arguments={"query": "cats", "page": 2, "ratio": 0.5, "lang": "en"}
        )
        assert isinstance(tool_call.arguments["page"], int)
        assert isinstance(tool_call.arguments["ratio"], float)

    def test_unsupported_argument_shapes_are_dropped(self):
        tool_call = parse_code_tool_call("add(a=1, b=x, c=[1])", {"add"})
        assert tool_call == ParsedToolCall(name="add", arguments={"a": 1})

    def test_unknown_function(self):
        assert parse_code_tool_call("print('hello')", {"add"}) is None

    def test_only_first_call_is_considered(self):
        assert parse_code_tool_call("print('x')\nadd(a=1, b=2)", {"add"}) is None

    def test_no_call(self):
        assert parse_code_tool_call("x = 1", {"x"}) is None


class TestAgentErrors:
    def test_error_is_logged_and_serialized(self):
        logger = AgentLogger(level=LogLevel.OFF)
        error = AgentMaxStepsError("agent reached maximum number of steps (3) without finding an answer", logger)

        assert isinstance(error, AgentError)
        assert str(error) == "agent reached maximum number of steps (3) without finding an answer"
        assert error.dict() == {
            "type": "AgentMaxStepsError",
            "message": "agent reached maximum number of steps (3) without finding an answer",
        }

    def test_error_logs_through_logger(self):
        class RecordingLogger:
            def __init__(self):
                self.errors = []

            def log_error(self, message):
                self.errors.append(message)

        logger = RecordingLogger()
        AgentToolNotFoundError("tool not found: search", logger)
        assert logger.errors == ["tool not found: search"]


@dataclass
class Sample:
    name: str
    tags: set


def test_make_json_serializable():
    assert make_json_serializable({"sample": Sample(name="a", tags={"x"}), 1: (1, 2)}) == {
        "sample": {"name": "a", "tags": ["x"]},
        "1": [1, 2],
    }


def test_truncate_content():
    assert truncate_content("short") == "short"
    truncated = truncate_content("a" * 50 + "b" * 50, max_length=20)
    assert truncated.startswith("a" * 10)
    assert truncated.endswith("b" * 10)
    assert "truncated" in truncated


@pytest.mark.parametrize(
    "name, expected",
    [("echo", True), ("get_weather2", True), ("2fast", False), ("class", False), ("with space", False), (None, False)],
)
def test_is_valid_name(name, expected):
    assert is_valid_name(name) is expected
