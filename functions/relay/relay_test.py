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

import unittest
from unittest.mock import patch, MagicMock

from firebase_functions import https_fn
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from relay import relay
from shared.api import ConversationTurn, RelayRequest, SendMessageResult
from shared.config import Settings


class FakeIdentity:
    def __init__(self, user_id=None):
        self.user_id = user_id

    def resolve_user_id(self) -> str:
        if not self.user_id:
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.UNAUTHENTICATED, "no user"
            )
        return self.user_id


def _prepared(message="hi", provider="gemini", history=None, conversation_id=None):
    return relay.PreparedRelay(
        user_id="user-1",
        request=RelayRequest(
            message=message,
            provider=provider,
            conversation_id=conversation_id,
            history=history or [],
        ),
        api_key="test-key",
        model="test-model",
    )


class ParseRequestTest(unittest.TestCase):

    def assertInvalidArgument(self, data, message_part):
        with self.assertRaises(https_fn.HttpsError) as cm:
            relay.parse_request(data)
        self.assertEqual(
            cm.exception.code, https_fn.FunctionsErrorCode.INVALID_ARGUMENT
        )
        self.assertIn(message_part, cm.exception.message)

    def test_full_payload(self):
        request = relay.parse_request(
            {
                "message": "Hello",
                "provider": "gemini",
                "conversationId": "conv-1",
                "history": [
                    {"role": "user", "content": "Earlier question"},
                    {"role": "model", "content": "Earlier answer", "id": "x"},
                ],
            }
        )

        self.assertEqual(
            request,
            RelayRequest(
                message="Hello",
                provider="gemini",
                conversation_id="conv-1",
                history=[
                    ConversationTurn(role="user", content="Earlier question"),
                    ConversationTurn(role="model", content="Earlier answer"),
                ],
            ),
        )

    def test_defaults(self):
        request = relay.parse_request({"message": "Hello"})

        self.assertEqual(request.provider, "gemini")
        self.assertIsNone(request.conversation_id)
        self.assertEqual(request.history, [])

    def test_message_must_be_non_empty_string(self):
        for data in [{}, {"message": ""}, {"message": None}, {"message": 42},
                     {"message": ["hi"]}, None, "hi"]:
            with self.subTest(data=data):
                self.assertInvalidArgument(data, "Message must be a non-empty string")

    def test_message_too_long(self):
        self.assertInvalidArgument({"message": "a" * 10001}, "Message exceeds max length")

    def test_invalid_history(self):
        self.assertInvalidArgument(
            {"message": "hi", "history": "previous"}, "History must be a list"
        )
        self.assertInvalidArgument(
            {"message": "hi", "history": [{"role": "user"}]}, "string content"
        )
        self.assertInvalidArgument(
            {"message": "hi", "history": ["hello"]}, "string content"
        )
        self.assertInvalidArgument(
            {"message": "hi", "history": [{"role": "user", "content": "a"}] * 101},
            "History exceeds max length",
        )

    def test_invalid_optional_fields(self):
        self.assertInvalidArgument({"message": "hi", "provider": 3}, "Provider")
        self.assertInvalidArgument(
            {"message": "hi", "conversationId": 3}, "conversationId"
        )


class PrepareTest(unittest.TestCase):

    def setUp(self):
        settings_patcher = patch(
            "relay.relay.load_settings",
            return_value=Settings(gemini_api_key="test-key", gemini_model="test-model"),
        )
        quota_patcher = patch("relay.relay.quota.check_and_consume")
        self.mock_load_settings = settings_patcher.start()
        self.mock_check_and_consume = quota_patcher.start()
        self.addCleanup(settings_patcher.stop)
        self.addCleanup(quota_patcher.stop)

    def test_prepare_success(self):
        prepared = relay.prepare(FakeIdentity("user-1"), {"message": "Hello"})

        self.assertEqual(prepared.user_id, "user-1")
        self.assertEqual(prepared.request.message, "Hello")
        self.assertEqual(prepared.api_key, "test-key")
        self.assertEqual(prepared.model, "test-model")
        self.mock_check_and_consume.assert_called_once_with("user-1", db=None)

    def test_unauthenticated_skips_quota(self):
        with self.assertRaises(https_fn.HttpsError) as cm:
            relay.prepare(FakeIdentity(None), {"message": "Hello"})

        self.assertEqual(
            cm.exception.code, https_fn.FunctionsErrorCode.UNAUTHENTICATED
        )
        self.mock_check_and_consume.assert_not_called()

    def test_invalid_message_skips_quota(self):
        with self.assertRaises(https_fn.HttpsError) as cm:
            relay.prepare(FakeIdentity("user-1"), {"message": ""})

        self.assertEqual(
            cm.exception.code, https_fn.FunctionsErrorCode.INVALID_ARGUMENT
        )
        self.mock_check_and_consume.assert_not_called()

    def test_missing_api_key_skips_quota(self):
        self.mock_load_settings.return_value = Settings(gemini_api_key=None)

        with self.assertRaises(https_fn.HttpsError) as cm:
            relay.prepare(FakeIdentity("user-1"), {"message": "Hello"})

        self.assertEqual(
            cm.exception.code, https_fn.FunctionsErrorCode.FAILED_PRECONDITION
        )
        self.mock_check_and_consume.assert_not_called()

    def test_quota_error_propagates(self):
        self.mock_check_and_consume.side_effect = https_fn.HttpsError(
            https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED, "Daily quota exceeded."
        )

        with self.assertRaises(https_fn.HttpsError) as cm:
            relay.prepare(FakeIdentity("user-1"), {"message": "Hello"})

        self.assertEqual(
            cm.exception.code, https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED
        )


class SendTest(unittest.TestCase):

    @patch("relay.relay.time.time", return_value=1700000000.25)
    @patch("relay.relay.gemini.call_chat")
    def test_send_returns_reply_and_logs_usage(self, mock_call_chat, mock_time):
        mock_call_chat.return_value = "Hello there"
        mock_db = MagicMock()
        history = [ConversationTurn(role="user", content="Earlier")]

        result = relay.send(
            _prepared(message="Hi!", provider="openai", history=history,
                      conversation_id="conv-1"),
            db=mock_db,
        )

        self.assertEqual(
            result,
            SendMessageResult(
                content="Hello there",
                provider="gemini",
                timestamp=1700000000250,
                conversation_id="conv-1",
            ),
        )
        mock_call_chat.assert_called_once_with(
            "Hi!", api_key="test-key", history=history, model="test-model"
        )
        mock_db.collection.assert_called_once_with("usage_logs")
        mock_db.collection.return_value.add.assert_called_once_with(
            {
                "userId": "user-1",
                "provider": "openai",
                "messageLength": 3,
                "responseLength": 11,
                "timestamp": SERVER_TIMESTAMP,
            }
        )

    @patch("relay.relay.gemini.call_chat")
    def test_provider_failure_writes_no_log(self, mock_call_chat):
        mock_call_chat.side_effect = RuntimeError("model down")
        mock_db = MagicMock()

        with self.assertRaises(RuntimeError):
            relay.send(_prepared(), db=mock_db)

        mock_db.collection.return_value.add.assert_not_called()


class StreamTest(unittest.TestCase):

    @patch("relay.relay.gemini.stream_chat")
    def test_stream_yields_fragments_then_logs(self, mock_stream_chat):
        mock_stream_chat.return_value = iter(["h", "i", "!"])
        mock_db = MagicMock()

        fragments = relay.stream(_prepared(message="hi"), db=mock_db)

        self.assertEqual(next(fragments), "h")
        mock_db.collection.return_value.add.assert_not_called()
        self.assertEqual(list(fragments), ["i", "!"])
        mock_db.collection.return_value.add.assert_called_once_with(
            {
                "userId": "user-1",
                "provider": "gemini",
                "messageLength": 2,
                "responseLength": 3,
                "timestamp": SERVER_TIMESTAMP,
            }
        )

    @patch("relay.relay.gemini.stream_chat")
    def test_failure_mid_stream_writes_no_log(self, mock_stream_chat):
        def failing_stream(*args, **kwargs):
            yield "h"
            raise RuntimeError("connection reset")

        mock_stream_chat.side_effect = failing_stream
        mock_db = MagicMock()

        fragments = relay.stream(_prepared(), db=mock_db)

        self.assertEqual(next(fragments), "h")
        with self.assertRaises(RuntimeError):
            next(fragments)
        mock_db.collection.return_value.add.assert_not_called()


class SseEventTest(unittest.TestCase):

    def test_sse_event(self):
        self.assertEqual(relay.sse_event({"content": "h"}), 'data: {"content": "h"}\n\n')
        self.assertEqual(relay.sse_event({"done": True}), 'data: {"done": true}\n\n')


if __name__ == "__main__":
    unittest.main()
