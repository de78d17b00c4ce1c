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
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from huggingface_hub import InferenceClient


logger = logging.getLogger(__name__)


__all__ = ["MessageRole", "ChatMessage", "Model", "InferenceClientModel"]


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def roles(cls):
        return [role.value for role in cls]


@dataclass(frozen=True)
class ChatMessage:
    """One message of a conversation. `name` identifies the tool and is only set on tool messages."""

    role: MessageRole
    content: str
    name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(role=MessageRole(data["role"]), content=data["content"], name=data.get("name"))

    def dict(self) -> dict[str, Any]:
        message = {"role": self.role.value, "content": self.content}
        if self.name is not None:
            message["name"] = self.name
        return message


tool_role_conversions = {
    MessageRole.TOOL: MessageRole.USER,
}


def get_clean_message_list(
    message_list: list[ChatMessage | dict],
    role_conversions: dict[MessageRole, MessageRole] | None = None,
) -> list[dict[str, Any]]:
    """
    Creates a list of messages to give as input to the LLM.

    Tool messages are converted with `role_conversions` and their content is prefixed with the tool name,
    since most chat completion endpoints reject a `tool` message that does not answer a native tool call.

    Args:
        message_list (`list[ChatMessage | dict]`): List of chat messages. Mixed types are allowed.
        role_conversions (`dict[MessageRole, MessageRole]`, *optional* ): Mapping to convert roles.
    """
    if role_conversions is None:
        role_conversions = {}
    output_message_list: list[dict[str, Any]] = []
    for message in message_list:
        if isinstance(message, dict):
            message = ChatMessage.from_dict(message)
        if message.role.value not in MessageRole.roles():
            raise ValueError(f"Incorrect role {message.role}, only {MessageRole.roles()} are supported for now.")

        content = message.content
        if message.role == MessageRole.TOOL and message.role in role_conversions:
            content = f"Observation from tool '{message.name}':\n{content}"
        role = role_conversions.get(message.role, message.role)
        output_message_list.append({"role": role.value, "content": content})
    return output_message_list


class Model:
    """Base class for the language models an agent talks to.

    Subclasses implement `generate` and `generate_with_tools`. Both receive the full message list and return
    the generated text; errors are raised and reach the caller of `agent.run` unchanged.
    """

    def __init__(self, model_id: str | None = None, **kwargs):
        self.model_id = model_id
        self.kwargs = kwargs

    def generate(self, messages: list[ChatMessage]) -> str:
        """Generate text for the given messages."""
        raise NotImplementedError("generate must be implemented in child classes")

    def generate_with_tools(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> str:
        """Generate text for the given messages, exposing the function-calling schemas of `tools` to the model."""
        raise NotImplementedError("generate_with_tools must be implemented in child classes")

    def __call__(self, messages: list[ChatMessage], tools: list[dict[str, Any]] | None = None) -> str:
        if tools is None:
            return self.generate(messages)
        return self.generate_with_tools(messages, tools)

    def to_dict(self) -> dict[str, Any]:
        return {"model_id": self.model_id, **self.kwargs}


class InferenceClientModel(Model):
    """A class to interact with Hugging Face's Inference Providers through `huggingface_hub.InferenceClient`.

    Parameters:
        model_id (`str`):
            The Hugging Face model ID to be used for inference.
        provider (`str`, *optional*):
            Name of the provider to use for inference, e.g. "together" or "novita". Defaults to the client's choice.
        token (`str`, *optional*):
            Token used by the client. If unset, the token stored by `huggingface-cli login` or the `HF_TOKEN`
            environment variable is used.
        max_tokens (`int`, default `1024`):
            Maximum number of tokens to generate per call.
        timeout (`int`, default `60`):
            Timeout of the API request, in seconds.
        client_kwargs (`dict[str, Any]`, *optional*):
            Additional keyword arguments to pass to the `InferenceClient`.
    """

    def __init__(
        self,
        model_id: str,
        provider: str | None = None,
        token: str | None = None,
        max_tokens: int = 1024,
        timeout: int = 60,
        client_kwargs: dict[str, Any] | None = None,
        **kwargs,
    ):
        super().__init__(model_id=model_id, **kwargs)
        self.provider = provider
        self.max_tokens = max_tokens
        self.client = InferenceClient(
            model=model_id,
            provider=provider,
            token=token,
            timeout=timeout,
            **(client_kwargs or {}),
        )

    def generate(self, messages: list[ChatMessage]) -> str:
        return self._chat_completion(messages)

    def generate_with_tools(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> str:
        return self._chat_completion(messages, tools=tools)

    def _chat_completion(self, messages: list[ChatMessage], tools: list[dict[str, Any]] | None = None) -> str:
        completion_kwargs: dict[str, Any] = {
            "messages": get_clean_message_list(messages, role_conversions=tool_role_conversions),
            "max_tokens": self.max_tokens,
        }
        if tools:
            completion_kwargs["tools"] = tools
        response = self.client.chat_completion(**completion_kwargs)
        if not response.choices:
            raise ValueError(f"Empty response from model {self.model_id}")

        message = response.choices[0].message
        if message.tool_calls:
            # Native tool calls are rendered back into the fenced wire format the agents parse.
            function = message.tool_calls[0].function
            arguments = function.arguments
            if isinstance(arguments, str):
                arguments = json.loads(arguments) if arguments.strip() else {}
            logger.debug("Model returned a native tool call to %s", function.name)
            return "```json\n" + json.dumps({"tool": function.name, "args": arguments}) + "\n```"
        return message.content or ""

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "provider": self.provider, "max_tokens": self.max_tokens}
