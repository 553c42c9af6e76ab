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
"""Environment-backed configuration for the chat relay functions."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import DEFAULT_GEMINI_MODEL


class Settings(BaseSettings):
    """
    Settings read from the environment (and a local .env file).

    GEMINI_API_KEY is deployed as a Firebase secret, which the runtime exposes
    to the function as an environment variable.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    gemini_api_key: Optional[str] = Field(default=None)
    gemini_model: str = Field(default=DEFAULT_GEMINI_MODEL)


def load_settings() -> Settings:
    """Reads settings from the environment on every call (no caching)."""
    return Settings()
