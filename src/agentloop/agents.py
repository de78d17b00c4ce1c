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
import dataclasses
import importlib.resources
import re
import time
from collections.abc import Callable, Container
from dataclasses import dataclass
from logging import getLogger
from typing import Any, Literal, Protocol, TypedDict

import yaml
from jinja2 import StrictUndefined, Template

from .memory import ActionStep, AgentMemory, MemoryStep, PlanningStep, Timing
from .models import ChatMessage, MessageRole, Model
from .monitoring import AgentLogger, LogLevel
from .tools import Tool, format_tool_description
from .utils import (
    AgentError,
    AgentInterruptedError,
    AgentMaxStepsError,
    AgentStepNotImplementedError,
    AgentToolExecutionError,
    AgentToolNotFoundError,
    ParsedToolCall,
    extract_code_blocks,
    parse_code_tool_call,
    parse_json_tool_call,
    truncate_content,
)


__all__ = [
    "AgentConfig",
    "CodeAgent",
    "CodeBlockStrategy",
    "MultiStepAgent",
    "RunResult",
    "StepStrategy",
    "ToolCallingAgent",
    "ToolCallingStrategy",
]


logger = getLogger(__name__)


def populate_template(template: str, variables: dict[str, Any]) -> str:
    compiled_template = Template(template, undefined=StrictUndefined)
    try:
        return compiled_template.render(**variables)
    except Exception as e:
        raise Exception(f"Error during jinja template rendering: {type(e).__name__}: {e}")


def load_prompt_templates(filename: str) -> "PromptTemplates":
    return yaml.safe_load(importlib.resources.files("agentloop.prompts").joinpath(filename).read_text())


class PlanningPromptTemplate(TypedDict):
    """
    Prompt templates for the planning step.

    Args:
        initial_plan (`str`): Initial plan prompt.
        update_plan (`str`): Prompt asking to revise the plan, sent after the conversation so far.
    """

    initial_plan: str
    update_plan: str


class PromptTemplates(TypedDict):
    """
    Prompt templates for the agent.

    Args:
        system_prompt (`str`): System prompt, used when the configuration sets none.
        tools_description (`str`): Block describing the tools and the expected tool call format.
        planning ([`~agents.PlanningPromptTemplate`]): Planning prompt templates.
    """

    system_prompt: str
    tools_description: str
    planning: PlanningPromptTemplate


EMPTY_PROMPT_TEMPLATES = PromptTemplates(
    system_prompt="",
    tools_description="",
    planning=PlanningPromptTemplate(initial_plan="", update_plan=""),
)


@dataclass
class AgentConfig:
    """Configuration of an agent.

    Args:
        max_steps (`int`, default `20`): Maximum number of action steps of a run. Must be positive.
        system_prompt (`str`, *optional*): System prompt. Defaults to the agent's prompt template.
        name (`str`, *optional*): Name of the agent. Defaults to the agent's class name.
        description (`str`, *optional*): Description of the agent.
        planning_interval (`int`, *optional*): Run a planning step every `planning_interval` action steps.
            Planning is disabled when unset.
    """

    max_steps: int = 20
    system_prompt: str | None = None
    name: str | None = None
    description: str | None = None
    planning_interval: int | None = None

    def __post_init__(self):
        if not isinstance(self.max_steps, int) or isinstance(self.max_steps, bool) or self.max_steps <= 0:
            raise ValueError(f"max_steps must be a positive integer, got {self.max_steps!r}")
        if self.planning_interval is not None and (
            not isinstance(self.planning_interval, int)
            or isinstance(self.planning_interval, bool)
            or self.planning_interval <= 0
        ):
            raise ValueError(f"planning_interval must be a positive integer, got {self.planning_interval!r}")

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "AgentConfig":
        field_names = {config_field.name for config_field in dataclasses.fields(cls)}
        unknown_keys = set(config_dict) - field_names
        if unknown_keys:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown_keys)}")
        return cls(**config_dict)


@dataclass
class RunResult:
    """Holds extended information about an agent run.

    Attributes:
        output (Any): The final answer of the run.
        state (Literal["success"]): The final state of the agent after the run. Failed runs raise instead.
        messages (list[dict]): The agent's memory, as a list of messages.
        steps (list[dict]): The agent's memory, as a list of serialized steps.
        timing (Timing): Timing details of the agent run: start time, end time, duration.
    """

    output: Any
    state: Literal["success"]
    messages: list[dict]
    steps: list[dict]
    timing: Timing


class StepStrategy(Protocol):
    """Performs one action step of an agent.

    `step` receives the agent and the open action step, whose messages hold the prompt built for this step.
    It returns the final answer, or `None` to let the loop continue, and raises to abort the run.
    """

    def step(self, agent: "MultiStepAgent", memory_step: ActionStep) -> Any | None: ...


class ToolCallingStrategy:
    """Asks the model for a tool call through its tool-calling entry point.

    A fenced `{"tool": ..., "args": {...}}` block in the answer is dispatched; any other answer is the final answer.
    """

    def step(self, agent: "MultiStepAgent", memory_step: ActionStep) -> Any | None:
        model_output = agent.model.generate_with_tools(list(memory_step.messages), agent.tools_schema())
        memory_step.messages.append(ChatMessage(role=MessageRole.ASSISTANT, content=model_output))
        agent.logger.log_markdown(content=model_output, title="Output message of the LLM:", level=LogLevel.DEBUG)

        tool_call = parse_json_tool_call(model_output)
        if tool_call is None:
            return model_output
        agent.dispatch_tool_call(memory_step, tool_call)
        return None


class CodeBlockStrategy:
    """Asks the model for plain text and looks for a tool call written as code.

    The first fenced code block holding a call to a known tool is dispatched. Without such a block, a fenced JSON
    tool call is tried, and failing that the answer is the final answer. Code is never executed.
    """

    def step(self, agent: "MultiStepAgent", memory_step: ActionStep) -> Any | None:
        model_output = agent.model.generate(list(memory_step.messages))
        memory_step.messages.append(ChatMessage(role=MessageRole.ASSISTANT, content=model_output))
        agent.logger.log_markdown(content=model_output, title="Output message of the LLM:", level=LogLevel.DEBUG)

        tool_call = self.extract_tool_call(model_output, agent.tools)
        if tool_call is None:
            return model_output
        agent.dispatch_tool_call(memory_step, tool_call)
        return None

    @staticmethod
    def extract_tool_call(model_output: str, tool_names: Container[str]) -> ParsedToolCall | None:
        for code in extract_code_blocks(model_output):
            tool_call = parse_code_tool_call(code, tool_names)
            if tool_call is not None:
                return tool_call
        return parse_json_tool_call(model_output)


def split_facts_and_plan(plan_output: str) -> tuple[str, str]:
    """Splits a planning answer on its `## Plan` heading. Without the heading, the whole answer is the plan."""
    plan_heading = re.search(r"^#+\s*Plan\b.*$", plan_output, flags=re.MULTILINE | re.IGNORECASE)
    if plan_heading is None:
        return "", plan_output.strip()
    facts = re.sub(r"^#+\s*Facts\b.*$", "", plan_output[: plan_heading.start()], flags=re.MULTILINE | re.IGNORECASE)
    return facts.strip(), plan_output[plan_heading.end() :].strip()


class MultiStepAgent:
    """
    Agent class that solves the given task step by step:
    while no final answer is produced, the agent asks the model for an action, dispatches the requested tool and
    feeds the observation back into the conversation.

    How an action step is performed is delegated to a step strategy. Without one, the agent's own `step` method is
    used, which subclasses may override.

    Args:
        tools (`list[Tool]`): [`Tool`]s that the agent can use. At least one is required and names must be unique.
        model (`Model`): Model that will generate the agent's actions.
        step_strategy ([`~agents.StepStrategy`], *optional*): Strategy performing each action step.
        config ([`~agents.AgentConfig`], *optional*): Agent configuration.
        prompt_templates ([`~agents.PromptTemplates`], *optional*): Prompt templates.
        step_callbacks (`list[Callable]`, *optional*): Callbacks called with each completed action or planning step.
        verbosity_level (`LogLevel`, default `LogLevel.INFO`): Level of verbosity of the agent's logs.
        logger ([`~monitoring.AgentLogger`], *optional*): Logger to use instead of a new one.
        **config_overrides: Fields of [`~agents.AgentConfig`], overriding those of `config`.
    """

    prompt_templates_file = "toolcalling_agent.yaml"
    default_description = "An agent that solves tasks step by step with the help of tools."

    def __init__(
        self,
        tools: list[Tool],
        model: Model,
        step_strategy: StepStrategy | None = None,
        config: AgentConfig | None = None,
        prompt_templates: PromptTemplates | None = None,
        step_callbacks: list[Callable] | None = None,
        verbosity_level: LogLevel = LogLevel.INFO,
        logger: AgentLogger | None = None,
        **config_overrides,
    ):
        if not tools:
            raise ValueError("At least one tool is required.")
        if model is None:
            raise ValueError("A model is required.")
        self.tools = self._setup_tools(tools)
        self.model = model
        self.step_strategy = step_strategy

        config = config if config is not None else AgentConfig()
        if config_overrides:
            config = dataclasses.replace(config, **config_overrides)
        self.config = config

        self.prompt_templates = prompt_templates or load_prompt_templates(self.prompt_templates_file)
        if prompt_templates is not None:
            self._validate_prompt_templates(prompt_templates)

        self.name = config.name or self.__class__.__name__
        self.description = config.description or self.default_description
        self.max_steps = config.max_steps
        self.planning_interval = config.planning_interval
        self.system_prompt = self.initialize_system_prompt()

        self.memory = AgentMemory()
        self.logger = logger if logger is not None else AgentLogger(level=verbosity_level)
        self.step_callbacks = list(step_callbacks) if step_callbacks is not None else []
        self.step_number = 0
        self.task: str | None = None
        self.interrupt_switch = False

    def _setup_tools(self, tools: list[Tool]) -> dict[str, Tool]:
        for tool in tools:
            if not isinstance(tool, Tool):
                raise TypeError(f"Expected Tool instances, got {type(tool).__name__}")
        tool_names = [tool.name for tool in tools]
        duplicate_names = sorted({name for name in tool_names if tool_names.count(name) > 1})
        if duplicate_names:
            raise ValueError(f"Each tool should have a unique name! Duplicated names: {duplicate_names}")
        return {tool.name: tool for tool in tools}

    @staticmethod
    def _validate_prompt_templates(prompt_templates: PromptTemplates):
        missing_keys = set(EMPTY_PROMPT_TEMPLATES.keys()) - set(prompt_templates.keys())
        if missing_keys:
            raise ValueError(f"Some prompt templates are missing from your custom `prompt_templates`: {missing_keys}")
        for key, value in EMPTY_PROMPT_TEMPLATES.items():
            if isinstance(value, dict):
                for subkey in value.keys():
                    if subkey not in prompt_templates[key]:
                        raise ValueError(
                            f"Some prompt templates are missing from your custom `prompt_templates`: {subkey} under {key}"
                        )

    def initialize_system_prompt(self) -> str:
        if self.config.system_prompt is not None:
            return self.config.system_prompt
        return populate_template(
            self.prompt_templates["system_prompt"],
            variables={"tools": list(self.tools.values()), "name": self.name},
        )

    def tools_description(self) -> str:
        """Renders the block telling the model which tools exist and how to call them."""
        return populate_template(
            self.prompt_templates["tools_description"],
            variables={"tools": list(self.tools.values()), "format_tool_description": format_tool_description},
        )

    def tools_schema(self) -> list[dict[str, Any]]:
        return [tool.to_json_schema() for tool in self.tools.values()]

    def build_messages(self) -> list[ChatMessage]:
        """
        Builds the prompt for the next model call: the system prompt, the tools description, then every message of
        the transcript except system messages. Built anew for every call.
        """
        messages = [ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt)]
        if self.tools:
            messages.append(ChatMessage(role=MessageRole.SYSTEM, content=self.tools_description()))
        messages.extend(message for message in self.memory.get_messages() if message.role != MessageRole.SYSTEM)
        return messages

    def run(self, task: str, return_full_result: bool = False) -> Any | RunResult:
        """
        Run the agent for the given task.

        The memory of a previous run is discarded. The run ends with the first non-empty answer the step strategy
        returns, and fails when `max_steps` action steps produce none.

        Args:
            task (`str`): Task to perform.
            return_full_result (`bool`, default `False`): Return a [`RunResult`] rather than just the final answer.

        Raises:
            AgentMaxStepsError: no final answer within `max_steps` steps.
            AgentToolNotFoundError: the model called a tool the agent does not have.
            AgentToolExecutionError: a tool failed.
            AgentInterruptedError: `interrupt()` was called during the run.

        Example:
        ```py
        from agentloop import InferenceClientModel, ToolCallingAgent
        agent = ToolCallingAgent(tools=[get_weather], model=InferenceClientModel("Qwen/Qwen2.5-Coder-32B-Instruct"))
        agent.run("What is the weather in Paris?")
        ```
        """
        run_start_time = time.time()
        self.task = task
        self.interrupt_switch = False
        self.step_number = 0
        self.memory = AgentMemory()

        self.logger.log_task(
            content=task.strip(),
            subtitle=f"{type(self.model).__name__} - {getattr(self.model, 'model_id', None) or ''}",
            title=self.name,
            level=LogLevel.INFO,
        )
        self.memory.add_system_prompt_step(
            self.system_prompt, [ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt)]
        )
        self.memory.complete_current_step()
        self.memory.add_task_step(task, [ChatMessage(role=MessageRole.USER, content=task)])
        self.memory.complete_current_step()

        final_answer = self._run_steps(task)

        self.logger.log_final_answer(final_answer, level=LogLevel.INFO)
        if return_full_result:
            return RunResult(
                output=final_answer,
                state="success",
                messages=[message.dict() for message in self.memory.get_messages()],
                steps=self.memory.get_full_steps(),
                timing=Timing(start_time=run_start_time, end_time=time.time()),
            )
        return final_answer

    def _run_steps(self, task: str) -> Any:
        while self.step_number < self.max_steps:
            if self.interrupt_switch:
                raise AgentInterruptedError("Agent interrupted.", self.logger)
            self.step_number += 1
            logger.debug("%s: starting step %d of %d", self.name, self.step_number, self.max_steps)
            if self.planning_interval is not None and (self.step_number - 1) % self.planning_interval == 0:
                self.planning_step(task, is_first_step=self.step_number == 1)

            self.logger.log_rule(f"Step {self.step_number}", level=LogLevel.INFO)
            action_step = self.memory.add_action_step(task, self.build_messages(), step_number=self.step_number)
            try:
                result = self._execute_step(action_step)
                if result is not None and result != "":
                    action_step.action_output = result
            except AgentError as e:
                action_step.error = e
                raise
            finally:
                self._close_step(action_step)
            self._run_step_callbacks(action_step)

            if action_step.action_output is not None:
                return action_step.action_output

        raise AgentMaxStepsError(
            f"agent reached maximum number of steps ({self.max_steps}) without finding an answer", self.logger
        )

    def _execute_step(self, memory_step: ActionStep) -> Any | None:
        if self.step_strategy is not None:
            return self.step_strategy.step(self, memory_step)
        return self.step(memory_step)

    def step(self, memory_step: ActionStep) -> Any | None:
        """
        Performs one action step when no step strategy is set. Returns the final answer, or `None` to continue.
        To be implemented by subclasses.
        """
        raise AgentStepNotImplementedError(
            f"{self.__class__.__name__} has no step strategy and does not implement `step`.", self.logger
        )

    def _close_step(self, memory_step: MemoryStep):
        if self.memory.current_step is memory_step:
            self.memory.complete_current_step()

    def _run_step_callbacks(self, memory_step: MemoryStep):
        """Runs the step callbacks on a step that closed without error."""
        for callback in self.step_callbacks:
            callback(memory_step, agent=self)

    def _finalize_step(self, memory_step: MemoryStep):
        self._close_step(memory_step)
        self._run_step_callbacks(memory_step)

    def find_tool(self, tool_name: str) -> Tool:
        if tool_name not in self.tools:
            raise AgentToolNotFoundError(
                f"tool not found: {tool_name}. Available tools: {list(self.tools)}", self.logger
            )
        return self.tools[tool_name]

    def execute_tool_call(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        """
        Runs a tool and records the call on the current step, with its output or its error.

        Raises:
            AgentToolNotFoundError: the agent has no tool named `tool_name`. Nothing is recorded.
            AgentToolExecutionError: argument binding or the tool itself failed.
        """
        tool = self.find_tool(tool_name)
        self.logger.log_tool_call(tool_name, arguments, level=LogLevel.INFO)
        try:
            result = tool.execute(arguments)
        except Exception as e:
            self.memory.add_tool_call(tool_name, arguments, error=e)
            raise AgentToolExecutionError(
                f"Error executing tool '{tool_name}' with arguments {arguments}: {type(e).__name__}: {e}",
                self.logger,
            ) from e
        logger.debug("Tool %s returned %s", tool_name, type(result).__name__)
        self.memory.add_tool_call(tool_name, arguments, output=result)
        return result

    def dispatch_tool_call(self, memory_step: ActionStep, tool_call: ParsedToolCall) -> Any:
        """Runs a parsed tool call and appends its observation to the step as a tool message."""
        result = self.execute_tool_call(tool_call.name, tool_call.arguments)
        observation = str(result)
        self.logger.log(f"Observations: {truncate_content(observation)}", level=LogLevel.INFO)
        memory_step.messages.append(ChatMessage(role=MessageRole.TOOL, content=observation, name=tool_call.name))
        return result

    def planning_step(self, task: str, is_first_step: bool) -> PlanningStep:
        """Asks the model for a survey of facts and a plan, and records them as a planning step."""
        tool_variables = {"tools": list(self.tools.values()), "format_tool_description": format_tool_description}
        if is_first_step:
            planning_prompt = populate_template(
                self.prompt_templates["planning"]["initial_plan"], variables={"task": task, **tool_variables}
            )
            input_messages = [ChatMessage(role=MessageRole.USER, content=planning_prompt)]
        else:
            planning_prompt = populate_template(
                self.prompt_templates["planning"]["update_plan"],
                variables={"task": task, "remaining_steps": self.max_steps - self.step_number + 1, **tool_variables},
            )
            input_messages = self.build_messages() + [ChatMessage(role=MessageRole.USER, content=planning_prompt)]

        plan_output = self.model.generate(input_messages)
        facts, plan = split_facts_and_plan(plan_output)
        plan_message = (
            "Here are the facts I know and the plan of action that I will follow to solve the task:\n"
            f"```\n{plan_output}\n```"
        )
        planning_step = self.memory.add_planning_step(
            facts, plan, [ChatMessage(role=MessageRole.ASSISTANT, content=plan_message)]
        )
        self.logger.log_plan(plan_output, is_first_step, level=LogLevel.INFO)
        self._finalize_step(planning_step)
        return planning_step

    def interrupt(self):
        """Interrupts the agent execution before its next step."""
        self.interrupt_switch = True

    def replay(self, detailed: bool = False):
        """Prints a pretty replay of the agent's steps.

        Args:
            detailed (bool, optional): If True, also displays the messages of each step. Defaults to False.
        """
        self.memory.replay(self.logger, detailed=detailed)

    def to_dict(self) -> dict[str, Any]:
        """Convert the agent to a dictionary representation.

        Returns:
            `dict`: Dictionary representation of the agent.
        """
        if self.step_callbacks:
            self.logger.log("This agent has step_callbacks: they will be ignored by this method.", level=LogLevel.INFO)
        return {
            "class": self.__class__.__name__,
            "name": self.name,
            "description": self.description,
            "config": self.config.to_dict(),
            "tools": self.tools_schema(),
            "model": {
                "class": self.model.__class__.__name__,
                "data": self.model.to_dict(),
            },
            "step_strategy": type(self.step_strategy).__name__ if self.step_strategy is not None else None,
            "verbosity_level": int(self.logger.level),
        }

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r}, tools={list(self.tools)})"


class ToolCallingAgent(MultiStepAgent):
    """
    This agent asks the model for tool calls through the model's tool-calling entry point, passing the
    function-calling schemas of its tools.

    Args:
        tools (`list[Tool]`): [`Tool`]s that the agent can use.
        model (`Model`): Model that will generate the agent's actions.
        **kwargs: Additional keyword arguments, see [`MultiStepAgent`].
    """

    prompt_templates_file = "toolcalling_agent.yaml"
    default_description = "An agent specialized in calling tools and using their output."

    def __init__(self, tools: list[Tool], model: Model, **kwargs):
        super().__init__(tools=tools, model=model, step_strategy=ToolCallingStrategy(), **kwargs)


class CodeAgent(MultiStepAgent):
    """
    In this agent, the model calls tools by writing a call expression in a fenced code block. The call is parsed,
    never executed: only keyword arguments with string or number literals are understood.

    Args:
        tools (`list[Tool]`): [`Tool`]s that the agent can use.
        model (`Model`): Model that will generate the agent's actions.
        **kwargs: Additional keyword arguments, see [`MultiStepAgent`].
    """

    prompt_templates_file = "code_agent.yaml"
    default_description = "An agent that calls tools by writing them as code."

    def __init__(self, tools: list[Tool], model: Model, **kwargs):
        super().__init__(tools=tools, model=model, step_strategy=CodeBlockStrategy(), **kwargs)
