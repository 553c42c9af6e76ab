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
"""Relays chat messages to Gemini behind authentication and the daily quota."""

import json
import time
import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterator, List

from dacite import from_dict, Config
from firebase_functions import https_fn
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from identity.identity import IdentityResolver
from models import gemini
from quota import quota
from shared import firebase_utils
from shared.api import (
    ConversationTurn,
    RelayRequest,
    SendMessageResult,
    UsageLogEntry,
)
from shared.config import Settings, load_settings
from shared.constants import DEFAULT_PROVIDER, MAX_HISTORY_TURNS, MAX_MESSAGE_LENGTH
from shared.firebase_constants import USAGE_LOGS_COLLECTION
from shared.json_utils import convert_keys

logger = logging.getLogger(__name__)

# The reply always comes from Gemini, whatever provider the client asked for.
RESPONSE_PROVIDER = "gemini"


@dataclass
class PreparedRelay:
    """A request that passed auth, validation and the quota check."""

    user_id: str
    request: RelayRequest
    api_key: str
    model: str


def _invalid_argument(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(https_fn.FunctionsErrorCode.INVALID_ARGUMENT, message)


def parse_history(history: Any) -> List[ConversationTurn]:
    if history is None:
        return []
    if not isinstance(history, list):
        raise _invalid_argument("History must be a list of turns.")
    if len(history) > MAX_HISTORY_TURNS:
        raise _invalid_argument("History exceeds max length.")

    turns = []
    for turn in history:
        if not isinstance(turn, dict) or not isinstance(turn.get("content"), str):
            raise _invalid_argument("Each history turn must have string content.")
        turns.append(
            from_dict(
                data_class=ConversationTurn,
                data=turn,
                config=Config(check_types=False),
            )
        )
    return turns


def parse_request(data: Any) -> RelayRequest:
    """
    Validates the client payload `{message, provider?, conversationId?, history?}`.

    Raises:
        https_fn.HttpsError: INVALID_ARGUMENT describing the first problem found.
    """
    if not isinstance(data, dict):
        data = {}

    message = data.get("message")
    if not message or not isinstance(message, str):
        raise _invalid_argument("Message must be a non-empty string")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise _invalid_argument("Message exceeds max length.")

    provider = data.get("provider") or DEFAULT_PROVIDER
    if not isinstance(provider, str):
        raise _invalid_argument("Provider must be a string.")

    conversation_id = data.get("conversationId")
    if conversation_id is not None and not isinstance(conversation_id, str):
        raise _invalid_argument("conversationId must be a string.")

    return RelayRequest(
        message=message,
        provider=provider,
        conversation_id=conversation_id or None,
        history=parse_history(data.get("history")),
    )


def require_api_key(settings: Settings) -> str:
    if not settings.gemini_api_key:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.FAILED_PRECONDITION,
            "Gemini API key not configured. Please contact support.",
        )
    return settings.gemini_api_key


def prepare(identity: IdentityResolver, data: Any, db=None) -> PreparedRelay:
    """
    Runs every check that must pass before the model is called.

    Order: identity, payload, API key, then quota. Quota is consumed last so
    that a rejected request never uses up one of the user's messages.
    """
    user_id = identity.resolve_user_id()
    request = parse_request(data)
    settings = load_settings()
    api_key = require_api_key(settings)
    quota.check_and_consume(user_id, db=db)
    return PreparedRelay(
        user_id=user_id,
        request=request,
        api_key=api_key,
        model=settings.gemini_model,
    )


def log_usage(entry: UsageLogEntry, db=None) -> None:
    """Appends a usage log entry to Firestore."""
    if db is None:
        db = firebase_utils.get_db()
    log_json = convert_keys(asdict(entry), "snake_to_camel")
    log_json["timestamp"] = SERVER_TIMESTAMP
    db.collection(USAGE_LOGS_COLLECTION).add(log_json)


def send(prepared: PreparedRelay, db=None) -> SendMessageResult:
    """Sends the message and returns the complete reply."""
    request = prepared.request
    content = gemini.call_chat(
        request.message,
        api_key=prepared.api_key,
        history=request.history,
        model=prepared.model,
    )
    log_usage(
        UsageLogEntry(
            user_id=prepared.user_id,
            provider=request.provider,
            message_length=len(request.message),
            response_length=len(content),
        ),
        db=db,
    )
    return SendMessageResult(
        content=content,
        provider=RESPONSE_PROVIDER,
        timestamp=int(time.time() * 1000),
        conversation_id=request.conversation_id,
    )


def stream(prepared: PreparedRelay, db=None) -> Iterator[str]:
    """
    Yields reply fragments as they arrive. The usage log entry is written
    once the model has finished, before this generator is exhausted.
    """
    request = prepared.request
    fragments = []
    for fragment in gemini.stream_chat(
        request.message,
        api_key=prepared.api_key,
        history=request.history,
        model=prepared.model,
    ):
        fragments.append(fragment)
        yield fragment

    log_usage(
        UsageLogEntry(
            user_id=prepared.user_id,
            provider=request.provider,
            message_length=len(request.message),
            response_length=len("".join(fragments)),
        ),
        db=db,
    )


def sse_event(payload: dict) -> str:
    """Formats `payload` as one server-sent event."""
    return f"data: {json.dumps(payload)}\n\n"
