import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from agentloop.models import ChatMessage
from agentloop.monitoring import LogLevel
from agentloop.utils import AgentError, make_json_serializable


if TYPE_CHECKING:
    from agentloop.monitoring import AgentLogger


@dataclass
class Timing:
    """Start and end time of a run."""

    start_time: float
    end_time: float | None = None

    @property
    def duration(self) -> float | None:
        return None if self.end_time is None else self.end_time - self.start_time

    def dict(self):
        return {"start_time": self.start_time, "end_time": self.end_time, "duration": self.duration}


@dataclass(frozen=True)
class ToolCall:
    """Record of one dispatched tool call. `error` is empty when the call succeeded."""

    name: str
    arguments: dict[str, Any]
    output: Any = None
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return not self.error

    def dict(self):
        tool_call = {
            "name": self.name,
            "arguments": make_json_serializable(self.arguments),
            "output": make_json_serializable(self.output),
        }
        if self.error:
            tool_call["error"] = self.error
        return tool_call


@dataclass
class MemoryStep:
    """
    Base class for memory steps.

    A memory step represents a single step in an agent's execution: the messages it contributed to the conversation,
    when it started and ended, and the tool calls dispatched while it was open.
    Different kinds of steps (system prompt, task, action, planning) inherit from this class.
    """

    kind: ClassVar[str] = "step"

    messages: list[ChatMessage] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None

    @property
    def duration(self) -> float | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_messages(self) -> list[ChatMessage]:
        return list(self.messages)

    def dict(self) -> dict[str, Any]:
        """Convert the memory step to a dictionary."""
        return {
            "type": self.kind,
            "messages": [message.dict() for message in self.messages],
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "tool_calls": [tool_call.dict() for tool_call in self.tool_calls],
        }


@dataclass
class SystemPromptStep(MemoryStep):
    kind: ClassVar[str] = "system_prompt"

    system_prompt: str = ""

    def dict(self):
        return {**super().dict(), "system_prompt": self.system_prompt}


@dataclass
class TaskStep(MemoryStep):
    kind: ClassVar[str] = "task"

    task: str = ""

    def dict(self):
        return {**super().dict(), "task": self.task}


@dataclass
class ActionStep(MemoryStep):
    """
    A memory step that represents an action taken by the agent.

    Its messages start as the prompt built for the model; the step strategy then appends the model's answer and,
    when a tool is called, the tool's observation.
    """

    kind: ClassVar[str] = "action"

    input: str = ""
    step_number: int | None = None
    action_output: Any = None
    error: AgentError | None = None

    def dict(self):
        # We overwrite the method to parse the error and action_output manually
        return {
            **super().dict(),
            "input": self.input,
            "step": self.step_number,
            "action_output": make_json_serializable(self.action_output),
            "error": self.error.dict() if self.error else None,
        }


@dataclass
class PlanningStep(MemoryStep):
    kind: ClassVar[str] = "planning"

    facts: str = ""
    plan: str = ""

    def dict(self):
        return {**super().dict(), "facts": self.facts, "plan": self.plan}


class AgentMemory:
    """
    Transcript of one agent run.

    Steps are appended in order and at most one step is open at a time: every `add_*_step` call opens a new step and
    makes it current, `complete_current_step` stamps its end time and closes it. Tool calls are recorded on the
    current step.
    """

    def __init__(self):
        self.steps: list[MemoryStep] = []
        self.current_step: MemoryStep | None = None

    def reset(self):
        """Reset the memory by clearing all steps."""
        self.steps = []
        self.current_step = None

    def _open(self, step: MemoryStep) -> MemoryStep:
        self.steps.append(step)
        self.current_step = step
        return step

    def add_system_prompt_step(self, system_prompt: str, messages: list[ChatMessage]) -> SystemPromptStep:
        return self._open(SystemPromptStep(messages=list(messages), system_prompt=system_prompt))

    def add_task_step(self, task: str, messages: list[ChatMessage]) -> TaskStep:
        return self._open(TaskStep(messages=list(messages), task=task))

    def add_action_step(self, input: str, messages: list[ChatMessage], step_number: int | None = None) -> ActionStep:
        return self._open(ActionStep(messages=list(messages), input=input, step_number=step_number))

    def add_planning_step(self, facts: str, plan: str, messages: list[ChatMessage]) -> PlanningStep:
        return self._open(PlanningStep(messages=list(messages), facts=facts, plan=plan))

    def add_tool_call(
        self, name: str, arguments: dict[str, Any], output: Any = None, error: BaseException | str | None = None
    ) -> ToolCall | None:
        """Records a tool call on the current step. Returns `None` without recording when no step is open."""
        if self.current_step is None:
            return None
        tool_call = ToolCall(
            name=name,
            arguments=arguments,
            output=output if error is None else None,
            error=str(error) if error is not None else "",
        )
        self.current_step.tool_calls.append(tool_call)
        return tool_call

    def complete_current_step(self):
        """Stamps the end time of the current step and closes it. Does nothing when no step is open."""
        if self.current_step is None:
            return
        self.current_step.end_time = time.time()
        self.current_step = None

    def get_steps(self) -> list[MemoryStep]:
        return list(self.steps)

    def get_tool_calls(self) -> list[ToolCall]:
        return [tool_call for step in self.steps for tool_call in step.tool_calls]

    def get_messages(self) -> list[ChatMessage]:
        """Flattens the messages of all steps, in step order."""
        return [message for step in self.steps for message in step.to_messages()]

    def get_full_steps(self) -> list[dict]:
        """
        Get a full representation of the memory steps.

        Returns:
            list[dict]: A list of dictionaries representing the memory steps.
        """
        return [step.dict() for step in self.steps]

    def replay(self, logger: "AgentLogger", detailed: bool = False):
        """
        Prints a pretty replay of the agent's steps.

        Args:
            logger (AgentLogger): The logger to print replay logs to.
            detailed (bool, optional): If True, also displays the messages of each step. Defaults to False.
                Careful: will increase log length exponentially. Use only for debugging.
        """
        logger.console.log("Replaying the agent's steps:")
        for step in self.steps:
            if isinstance(step, SystemPromptStep) and detailed:
                logger.log_markdown(title="System prompt", content=step.system_prompt, level=LogLevel.ERROR)
            elif isinstance(step, TaskStep):
                logger.log_task(step.task, "", level=LogLevel.ERROR)
            elif isinstance(step, ActionStep):
                logger.log_rule(f"Step {step.step_number}", level=LogLevel.ERROR)
                if detailed:
                    logger.log_messages(step.messages, level=LogLevel.ERROR)
                for tool_call in step.tool_calls:
                    logger.log_tool_call(tool_call.name, tool_call.arguments, level=LogLevel.ERROR)
                if step.action_output is not None:
                    logger.log_markdown(title="Agent output:", content=str(step.action_output), level=LogLevel.ERROR)
            elif isinstance(step, PlanningStep):
                logger.log_rule("Planning step", level=LogLevel.ERROR)
                logger.log_markdown(title="Agent output:", content=step.facts + "\n" + step.plan, level=LogLevel.ERROR)

    def __len__(self):
        return len(self.steps)

    def __str__(self):
        lines = []
        for index, step in enumerate(self.steps, start=1):
            lines.append(f"Step {index}: {step.kind}")
            for message_index, message in enumerate(step.messages, start=1):
                lines.append(f"  Message {message_index}: [{message.role.value}] {message.content}")
            for call_index, tool_call in enumerate(step.tool_calls, start=1):
                lines.append(f"  Tool Call {call_index}: {tool_call.name}")
                lines.append(f"    Arguments: {tool_call.arguments}")
                if tool_call.error:
                    lines.append(f"    Error: {tool_call.error}")
                else:
                    lines.append(f"    Output: {tool_call.output}")
            lines.append("")
        return "\n".join(lines)


__all__ = [
    "AgentMemory",
    "MemoryStep",
    "ActionStep",
    "PlanningStep",
    "TaskStep",
    "SystemPromptStep",
    "Timing",
    "ToolCall",
]
