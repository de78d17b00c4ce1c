#!/usr/bin/env python
# coding=utf-8

# Copyright 2025 The HuggingFace Inc. team. All rights reserved.
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
"""Helpers turning a Python function signature into tool parameter metadata.

Annotations are mapped onto the JSON schema type tags tools may expose, and Google-style docstrings are read for
the tool description, the argument descriptions and `(choices: [...])` enums.
"""

import dataclasses
import inspect
import json
import re
from typing import Any, Callable, get_args, get_origin, get_type_hints

from pydantic import BaseModel


__all__ = ["UnsupportedParameterTypeError", "DocstringParsingException", "get_json_schema_type", "parse_docstring"]


class UnsupportedParameterTypeError(TypeError):
    """Exception raised when a function parameter has no JSON schema counterpart"""


class DocstringParsingException(Exception):
    """Exception raised for errors in parsing docstrings"""


_BASE_TYPE_MAPPING = {
    str: "string",
    bool: "boolean",
    int: "integer",
    float: "number",
    list: "array",
    tuple: "array",
    set: "array",
    frozenset: "array",
    dict: "object",
}


def get_json_schema_type(hint: Any) -> tuple[str, Any]:
    """Maps a type hint to its JSON schema type tag.

    Returns the type tag and the element hint for parametrised arrays (`list[int]` -> `("array", int)`), or
    `None` when there is no element hint.

    Raises:
        UnsupportedParameterTypeError: for missing hints, `Any`, unions, and classes that are neither builtins,
            dataclasses nor pydantic models.
    """
    if hint is inspect.Parameter.empty:
        raise UnsupportedParameterTypeError("parameter has no type hint")

    origin = get_origin(hint)
    if origin is None:
        if hint in _BASE_TYPE_MAPPING:
            return _BASE_TYPE_MAPPING[hint], None
        if isinstance(hint, type) and (dataclasses.is_dataclass(hint) or issubclass(hint, BaseModel)):
            return "object", None
        raise UnsupportedParameterTypeError(f"unsupported type: {_type_name(hint)}")

    if origin in (list, set, frozenset):
        args = get_args(hint)
        element_hint = args[0] if args else None
        if element_hint is not None:
            # validates the element type eagerly
            get_json_schema_type(element_hint)
        return "array", element_hint
    if origin is tuple:
        return "array", None
    if origin is dict:
        return "object", None
    raise UnsupportedParameterTypeError(f"unsupported type: {_type_name(hint)}")


def _type_name(hint: Any) -> str:
    if isinstance(hint, type) and get_origin(hint) is None:
        return hint.__name__
    return str(hint).replace("typing.", "")


def get_parameter_hints(func: Callable) -> list[tuple[str, Any]]:
    """Returns `(parameter name, type hint)` pairs of `func`, in declaration order."""
    try:
        type_hints = get_type_hints(func)
    except NameError as e:
        raise UnsupportedParameterTypeError(f"could not resolve type hints of {func.__name__}: {e}") from e
    signature = inspect.signature(func)
    hints = []
    for param_name, param in signature.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise UnsupportedParameterTypeError(
                f"variadic parameter '{param_name}' of {func.__name__} cannot be exposed to a model"
            )
        hints.append((param_name, type_hints.get(param_name, inspect.Parameter.empty)))
    return hints


def parse_docstring(func: Callable) -> tuple[str, dict[str, dict[str, Any]]]:
    """Reads the summary and the per-argument descriptions of a Google-style docstring.

    Returns the summary and a mapping from argument name to `{"description": ..., "enum": [...]}` (`enum` only
    when the description ends with a `(choices: [...])` block). A function without docstring gives `("", {})`.
    """
    doc = inspect.getdoc(func)
    if not doc:
        return "", {}
    main_doc, param_descriptions = _parse_google_format_docstring(doc.strip())

    arguments = {}
    for arg, desc in param_descriptions.items():
        argument: dict[str, Any] = {}
        lines = [line.rstrip() for line in desc.strip().splitlines()]
        for i in reversed(range(len(lines))):
            match = re.search(r"\(choices:\s*(.*?)\)", lines[i], flags=re.IGNORECASE)
            if match:
                try:
                    argument["enum"] = json.loads(match.group(1))
                except json.JSONDecodeError as e:
                    raise DocstringParsingException(
                        f"Invalid JSON in choices enum for argument '{arg}': {match.group(1)}"
                    ) from e
                lines[i] = lines[i][: match.start()].rstrip()
                break
        argument["description"] = "\n".join(lines).strip()
        arguments[arg] = argument
    return main_doc, arguments


# Splits the Args: block into individual arguments
args_split_re = re.compile(
    r"(?:^|\n)"  # Match the start of the args block, or a newline
    r"\s*(\w+)\s*(?:\([^)]*?\))?:\s*"  # Capture the argument name (ignore the type) and strip spacing
    r"(.*?)\s*"  # Capture the argument description, which can span multiple lines, and strip trailing spacing
    r"(?=\n\s*\w+\s*(?:\([^)]*?\))?:|\Z)",  # Stop when you hit the next argument (with or without type) or the end of the block
    re.DOTALL | re.VERBOSE,
)


def _parse_google_format_docstring(doc: str) -> tuple[str, dict[str, str]]:
    lines = doc.strip().splitlines()
    headers = {"Args:", "Returns:", "Raises:"}
    sections = {}
    current_lines = []
    description_lines = []
    current_section = None

    for line in lines:
        if (header := line.strip()) in headers:
            if current_section:
                sections[current_section] = current_lines
            else:
                description_lines = current_lines
            current_section = header[:-1].lower()  # strip colon
            current_lines = []
        else:
            current_lines.append(line)

    # Capture the final section or all as description if no headers
    if current_section:
        sections[current_section] = current_lines
    elif not description_lines:
        description_lines = lines

    args = {}
    if "args" in sections:
        for match in args_split_re.finditer("\n".join(sections["args"])):
            args[match.group(1)] = match.group(2).strip()

    return "\n".join(description_lines).strip(), args
