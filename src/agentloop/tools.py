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
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, get_args, get_origin

from pydantic import BaseModel

from ._function_type_hints_utils import (
    UnsupportedParameterTypeError,
    _type_name,
    get_json_schema_type,
    get_parameter_hints,
    parse_docstring,
)
from .utils import is_valid_name


logger = logging.getLogger(__name__)


__all__ = [
    "AUTHORIZED_TYPES",
    "ArgumentConversionError",
    "FunctionTool",
    "MissingArgumentError",
    "ParameterSpec",
    "Tool",
    "ToolArgumentError",
    "UnsupportedParameterTypeError",
    "format_tool_description",
    "tool",
]


AUTHORIZED_TYPES = [
    "string",
    "boolean",
    "integer",
    "number",
    "array",
    "object",
]

_DEFAULT_TARGETS = {
    "string": str,
    "boolean": bool,
    "integer": int,
    "number": float,
    "array": list,
    "object": dict,
}

_ZERO_VALUES: dict[str, Callable[[], Any]] = {
    "string": str,
    "boolean": bool,
    "integer": int,
    "number": float,
    "array": list,
    "object": dict,
}


class ToolArgumentError(ValueError):
    """Exception raised when the arguments of a tool call cannot be bound to the tool's parameters"""


class MissingArgumentError(ToolArgumentError):
    """Exception raised when a required argument is absent from a tool call"""


class ArgumentConversionError(ToolArgumentError):
    """Exception raised when an argument value cannot be converted to the parameter's type"""


def _json_default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _coerce(value: Any, type_tag: str, target: Any) -> Any:
    """Direct coercion of `value` to `target`. Raises `TypeError` or `ValueError` when not possible."""
    if type_tag == "string":
        if isinstance(value, str):
            return value
    elif type_tag == "boolean":
        if isinstance(value, bool):
            return value
    elif type_tag == "integer":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif type_tag == "number":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif type_tag == "array":
        if isinstance(value, (list, tuple, set, frozenset)):
            return _coerce_array(value, target)
    elif type_tag == "object":
        return _coerce_object(value, target)
    raise TypeError(f"expected {type_tag}, got {type(value).__name__}")


def _coerce_array(value, target: Any) -> Any:
    element_hint = None
    container = get_origin(target) or target
    if get_origin(target) in (list, set, frozenset) and get_args(target):
        element_hint = get_args(target)[0]
    items = list(value)
    if element_hint is not None:
        element_type, _ = get_json_schema_type(element_hint)
        items = [convert_value(item, element_type, element_hint) for item in items]
    if container in (tuple, set, frozenset):
        return container(items)
    return items


def _model_class(target: Any) -> type | None:
    """Returns `target` when it is a dataclass or pydantic model class, else `None`."""
    if get_origin(target) is None and isinstance(target, type):
        if issubclass(target, BaseModel) or dataclasses.is_dataclass(target):
            return target
    return None


def _coerce_object(value: Any, target: Any) -> Any:
    model_class = _model_class(target)
    if model_class is not None and issubclass(model_class, BaseModel):
        if isinstance(value, target):
            return value
        if isinstance(value, dict):
            return target.model_validate(value)
    elif model_class is not None:
        if isinstance(value, target):
            return value
        if isinstance(value, dict):
            return target(**value)
    elif isinstance(value, dict):
        return value
    raise TypeError(f"expected {_type_name(target)}, got {type(value).__name__}")


def convert_value(value: Any, type_tag: str, target: Any) -> Any:
    """Converts `value` for a parameter of JSON type `type_tag` backed by the Python type `target`.

    `None` becomes the zero value of the type. Otherwise a direct coercion is attempted first; if it fails, the
    value is serialized to JSON and deserialized again before retrying, which turns dataclasses, pydantic models
    and sets into plain containers that can be rebuilt into the target shape.
    """
    if value is None:
        if type_tag == "object" and _model_class(target) is not None:
            return None
        return _ZERO_VALUES[type_tag]()
    try:
        return _coerce(value, type_tag, target)
    except (TypeError, ValueError):
        pass
    try:
        round_tripped = json.loads(json.dumps(value, default=_json_default))
        return _coerce(round_tripped, type_tag, target)
    except (TypeError, ValueError) as e:
        raise ArgumentConversionError(f"cannot convert {type(value).__name__} value {value!r}: {e}") from e


@dataclass(frozen=True)
class ParameterSpec:
    """Descriptor of one tool parameter: its name, JSON type tag and the Python type its values convert to."""

    name: str
    type: str
    description: str = ""
    enum: list[Any] | None = None
    default: Any = None
    target: Any = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.default is not None:
            schema["default"] = self.default
        return schema

    def convert(self, value: Any) -> Any:
        target = self.target if self.target is not None else _DEFAULT_TARGETS[self.type]
        try:
            return convert_value(value, self.type, target)
        except ArgumentConversionError as e:
            raise ArgumentConversionError(f"failed to convert argument {self.name}: {e}") from e


class Tool:
    """
    A base class for the functions used by the agent. Subclass this and implement the `forward` method as well as the
    following class attributes:

    - **name** (`str`) -- The name of the tool. Models call the tool by this exact name, so it must be a valid
      Python identifier.
    - **description** (`str`) -- A short description of what the tool does, shown to the model.
    - **inputs** (`dict[str, dict[str, Any]]`) -- The parameters the tool expects, in order. Each entry holds a
      `type` (one of `AUTHORIZED_TYPES`), a `description`, and optionally an `enum` and a `default`.
      Every parameter is required.

    Calling `execute(arguments)` binds the argument mapping to the parameters, converting each value, and then
    calls `forward` with keyword arguments.
    """

    name: str
    description: str
    inputs: dict[str, dict[str, Any]]

    def __init__(self, *args, **kwargs):
        self.parameters: list[ParameterSpec] = self._build_parameters()
        self.validate_attributes()

    def _build_parameters(self) -> list[ParameterSpec]:
        parameters = []
        for input_name, input_content in getattr(self, "inputs", {}).items():
            if not isinstance(input_content, dict):
                raise TypeError(f"Input '{input_name}' should be a dictionary.")
            input_type = input_content.get("type")
            if input_type not in AUTHORIZED_TYPES:
                raise UnsupportedParameterTypeError(
                    f"Input '{input_name}': type '{input_type}' is not supported, must be one of {AUTHORIZED_TYPES}."
                )
            parameters.append(
                ParameterSpec(
                    name=input_name,
                    type=input_type,
                    description=input_content.get("description", ""),
                    enum=input_content.get("enum"),
                    default=input_content.get("default"),
                )
            )
        return parameters

    def validate_attributes(self):
        name = getattr(self, "name", None)
        if not name or not is_valid_name(name):
            raise ValueError(f"Tool name '{name}' must be a valid Python identifier and not a reserved keyword.")
        description = getattr(self, "description", None)
        if not isinstance(description, str) or not description.strip():
            raise ValueError(f"Tool '{name}' must have a non-empty description.")

    def schema(self) -> dict[str, Any]:
        """Returns the JSON schema of the tool's parameters."""
        return {
            "type": "object",
            "properties": {parameter.name: parameter.to_schema() for parameter in self.parameters},
            "required": [parameter.name for parameter in self.parameters],
        }

    def to_json_schema(self) -> dict[str, Any]:
        """Returns the function-calling schema handed to models that support tools."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema(),
            },
        }

    def bind_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Looks up and converts every declared parameter in `arguments`.

        Raises:
            MissingArgumentError: a parameter is absent from `arguments`.
            ArgumentConversionError: a value cannot be converted to its parameter's type.
        """
        bound = {}
        for parameter in self.parameters:
            if parameter.name not in arguments:
                raise MissingArgumentError(f"missing required argument: {parameter.name}")
            bound[parameter.name] = parameter.convert(arguments[parameter.name])
        return bound

    def execute(self, arguments: dict[str, Any] | None = None) -> Any:
        """Runs the tool on a name -> value argument mapping. Errors raised by `forward` propagate unchanged."""
        bound_arguments = self.bind_arguments(arguments or {})
        logger.debug("Executing tool %s with %s", self.name, bound_arguments)
        return self.forward(**bound_arguments)

    def forward(self, *args, **kwargs):
        raise NotImplementedError("Write this method in your subclass of `Tool`.")

    def __call__(self, **kwargs):
        return self.execute(kwargs)

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r})"


class FunctionTool(Tool):
    """A tool wrapping a plain Python function.

    The function's parameters are exposed as `arg0`, `arg1`, ... in declaration order: models must use these names
    in their tool calls. Each parameter needs a type hint mapping to one of `AUTHORIZED_TYPES`, otherwise
    `UnsupportedParameterTypeError` is raised here, when the tool is built.

    Args:
        name (`str`): Name under which the model calls the tool.
        description (`str`, *optional*): What the tool does. Defaults to the summary of the function's docstring.
        func (`Callable`): The function to wrap.
    """

    def __init__(self, name: str, description: str | None, func: Callable):
        if not callable(func):
            raise TypeError(f"func must be a function, got {type(func).__name__}")
        self.func = func
        self.name = name
        summary, argument_docs = parse_docstring(func)
        self.description = description or summary

        parameters = []
        for index, (param_name, hint) in enumerate(get_parameter_hints(func)):
            try:
                type_tag, _ = get_json_schema_type(hint)
            except UnsupportedParameterTypeError as e:
                raise UnsupportedParameterTypeError(
                    f"Cannot build tool '{name}': parameter {index} ('{param_name}'): {e}"
                ) from e
            argument_doc = argument_docs.get(param_name, {})
            parameters.append(
                ParameterSpec(
                    name=f"arg{index}",
                    type=type_tag,
                    description=argument_doc.get("description") or f"Parameter {index} of type {_type_name(hint)}",
                    enum=argument_doc.get("enum"),
                    target=hint,
                )
            )
        self._function_parameters = parameters
        self.inputs = {parameter.name: parameter.to_schema() for parameter in parameters}
        super().__init__()

    def _build_parameters(self) -> list[ParameterSpec]:
        return self._function_parameters

    def forward(self, **kwargs):
        return self.func(*(kwargs[parameter.name] for parameter in self.parameters))


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """
    Converts a function into a `FunctionTool`. Usable bare or with arguments:

    ```python
    @tool
    def get_weather(location: str) -> str:
        '''Get the current weather at the given location.'''
        ...

    @tool(name="add", description="Adds two integers.")
    def add_numbers(a: int, b: int) -> int:
        return a + b
    ```

    Args:
        func (`Callable`): Function to convert.
        name (`str`, *optional*): Tool name, defaults to the function name.
        description (`str`, *optional*): Tool description, defaults to the docstring summary.
    """

    def wrap(function: Callable) -> FunctionTool:
        return FunctionTool(name or function.__name__, description, function)

    if func is None:
        return wrap
    return wrap(func)


def format_tool_description(tool: Tool) -> str:
    """Formats a tool for the tools block of the prompt."""
    lines = [f"Tool Name: {tool.name}", f"Description: {tool.description}"]
    schema = tool.schema()
    if schema["properties"]:
        lines.append("Parameters:")
        for parameter_name, parameter_schema in schema["properties"].items():
            required = " (required)" if parameter_name in schema["required"] else ""
            lines.append(f"  - {parameter_name}: {parameter_schema['type']}{required}")
            lines.append(f"    {parameter_schema['description']}")
            if "enum" in parameter_schema:
                lines.append(f"    Allowed values: {parameter_schema['enum']}")
    return "\n".join(lines) + "\n"
