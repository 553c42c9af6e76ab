# Copyright 2025 Google LLC
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
# ==============================================================================
"""Helpers for converting dictionary keys between snake_case and camelCase."""

import re
from typing import Any, Callable

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_to_camel(name: str) -> str:
    first, *rest = name.split("_")
    return first + "".join(word[:1].upper() + word[1:] for word in rest)


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


_CONVERTERS: dict[str, Callable[[str], str]] = {
    "snake_to_camel": snake_to_camel,
    "camel_to_snake": camel_to_snake,
}


def convert_keys(data: Any, direction: str) -> Any:
    """
    Recursively converts the keys of dictionaries (including dictionaries
    nested in lists) using the given direction.

    Args:
        data: A dict, list, or scalar value. Scalars are returned unchanged.
        direction (str): Either "snake_to_camel" or "camel_to_snake".

    Returns:
        A new structure with converted keys.
    """
    if direction not in _CONVERTERS:
        raise ValueError(f"Unknown key conversion direction: {direction}")
    return _convert(data, _CONVERTERS[direction])


def _convert(data: Any, converter: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {
            converter(key) if isinstance(key, str) else key: _convert(value, converter)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [_convert(item, converter) for item in data]
    return data
