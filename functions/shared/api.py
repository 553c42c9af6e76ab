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

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ConversationTurn:
    """A prior turn supplied by the client as chat context. Never stored."""

    content: str
    role: str = ""


@dataclass
class RelayRequest:
    """A validated request to relay a message to the model."""

    message: str
    provider: str
    conversation_id: Optional[str] = None
    history: List[ConversationTurn] = field(default_factory=list)


@dataclass
class SendMessageResult:
    """Response returned by the send_message callable."""

    content: str
    provider: str
    timestamp: int  # Milliseconds since epoch.
    conversation_id: Optional[str] = None


@dataclass
class QuotaStatus:
    used: int
    limit: int
    remaining: int
    date: str


@dataclass
class UsageCounter:
    """
    Schema for the per-user, per-day message counter stored in Firestore.

    The `lastUpdated` server timestamp is added at write time.
    """

    user_id: str
    date: str
    count: int = 0


@dataclass
class UsageLogEntry:
    """
    Schema for one processed message, appended to the usage log in Firestore.

    The `timestamp` server timestamp is added at write time.
    """

    user_id: str
    provider: str
    message_length: int
    response_length: int
