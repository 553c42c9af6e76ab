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

import time
import logging
from typing import Iterator, List, Optional

from google import genai
from google.genai import types

from shared.api import ConversationTurn
from shared.constants import DEFAULT_GEMINI_MODEL

logger = logging.getLogger(__name__)

# Gemini only recognizes these two roles in chat history.
USER_ROLE = "user"
MODEL_ROLE = "model"


def build_chat_history(turns: List[ConversationTurn]) -> List[types.Content]:
    """
    Converts client-supplied turns into Gemini chat history.

    A turn whose role is "user" keeps the user role; every other turn is
    attributed to the model.
    """
    return [
        types.Content(
            role=USER_ROLE if turn.role == USER_ROLE else MODEL_ROLE,
            parts=[types.Part(text=turn.content)],
        )
        for turn in turns
    ]


def start_chat(
    api_key: str,
    history: Optional[List[ConversationTurn]] = None,
    model: str = DEFAULT_GEMINI_MODEL,
):
    """Starts a chat session, seeded with `history` when there is any."""
    client = genai.Client(api_key=api_key)
    if history:
        return client.chats.create(model=model, history=build_chat_history(history))
    return client.chats.create(model=model)


def call_chat(
    message: str,
    api_key: str,
    history: Optional[List[ConversationTurn]] = None,
    model: str = DEFAULT_GEMINI_MODEL,
) -> str:
    """
    Sends `message` to a chat session and waits for the full reply.

    A reply without text (e.g. a blocked prompt) is returned as "".
    """
    chat = start_chat(api_key, history=history, model=model)
    start_time = time.time()
    response = chat.send_message(message)
    logger.info(f"Gemini chat call took: {time.time() - start_time:.2f}s")
    return response.text or ""


def stream_chat(
    message: str,
    api_key: str,
    history: Optional[List[ConversationTurn]] = None,
    model: str = DEFAULT_GEMINI_MODEL,
) -> Iterator[str]:
    """Yields reply text fragments in the order the model delivers them."""
    chat = start_chat(api_key, history=history, model=model)
    for chunk in chat.send_message_stream(message):
        # Chunks carrying only metadata (e.g. the finish reason) are
        # forwarded as empty fragments.
        yield chunk.text or ""
