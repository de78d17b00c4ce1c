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
from enum import IntEnum
from typing import TYPE_CHECKING, Any

from rich.console import Console, Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.text import Text


if TYPE_CHECKING:
    from agentloop.models import ChatMessage


__all__ = ["AgentLogger", "LogLevel"]


YELLOW_HEX = "#d4b702"


class LogLevel(IntEnum):
    OFF = -1  # No output
    ERROR = 0  # Only errors
    INFO = 1  # Normal output (default)
    DEBUG = 2  # Detailed output


class AgentLogger:
    """Console logger for agent runs, backed by a `rich.Console`.

    Every method takes a `level`: the message is printed only when it is lower than or equal to
    the logger's own level, so `LogLevel.OFF` silences everything.
    """

    def __init__(self, level: LogLevel = LogLevel.INFO, console: Console | None = None):
        self.level = level
        if console is None:
            self.console = Console(highlight=False)
        else:
            self.console = console

    def log(self, *args, level: int | str | LogLevel = LogLevel.INFO, **kwargs) -> None:
        """Logs a message to the console.

        Args:
            level (LogLevel, optional): Defaults to LogLevel.INFO.
        """
        if isinstance(level, str):
            level = LogLevel[level.upper()]
        if level <= self.level:
            self.console.print(*args, **kwargs)

    def log_error(self, error_message: str) -> None:
        self.log(Text(error_message, style="bold red"), level=LogLevel.ERROR)

    def log_markdown(self, content: str, title: str | None = None, level=LogLevel.INFO, style=YELLOW_HEX) -> None:
        markdown_content = Syntax(
            content,
            lexer="markdown",
            theme="github-dark",
            word_wrap=True,
        )
        if title:
            self.log(
                Group(
                    Rule(
                        "[bold italic]" + title,
                        align="left",
                        style=style,
                    ),
                    markdown_content,
                ),
                level=level,
            )
        else:
            self.log(markdown_content, level=level)

    def log_rule(self, title: str, level: int = LogLevel.INFO) -> None:
        self.log(
            Rule(
                "[bold]" + title,
                characters="━",
                style=YELLOW_HEX,
            ),
            level=level,
        )

    def log_task(self, content: str, subtitle: str, title: str | None = None, level: LogLevel = LogLevel.INFO) -> None:
        self.log(
            Panel(
                f"\n[bold]{escape_rich_tags(content)}\n",
                title="[bold]New run" + (f" - {title}" if title else ""),
                subtitle=subtitle,
                border_style=YELLOW_HEX,
                subtitle_align="left",
            ),
            level=level,
        )

    def log_tool_call(self, tool_name: str, arguments: Any, level: LogLevel = LogLevel.INFO) -> None:
        self.log(
            Panel(Text(f"Calling tool: '{tool_name}' with arguments: {arguments}")),
            level=level,
        )

    def log_messages(self, messages: list["ChatMessage"] | None, level: LogLevel = LogLevel.DEBUG) -> None:
        if not messages:
            return
        messages_as_string = "\n".join(f"[{message.role.value}] {message.content}" for message in messages)
        self.log(
            Syntax(
                messages_as_string,
                lexer="markdown",
                theme="github-dark",
                word_wrap=True,
            ),
            level=level,
        )

    def log_final_answer(self, answer: Any, level: LogLevel = LogLevel.INFO) -> None:
        self.log(Text(f"Final answer: {answer}", style=f"bold {YELLOW_HEX}"), level=level)

    def log_plan(self, plan: str, is_first_step: bool, level: LogLevel = LogLevel.INFO) -> None:
        headline = "Initial plan" if is_first_step else "Updated plan"
        self.log(Rule(f"[bold]{headline}", style="orange"), Markdown(plan), level=level)


def escape_rich_tags(text: str) -> str:
    """Escapes opening square brackets so that rich does not read them as markup tags."""
    return text.replace("[", "\\[")
