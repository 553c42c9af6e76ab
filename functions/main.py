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

# Cloud functions for the chat relay backend - Gemini chat behind a daily quota.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import itertools
from dataclasses import asdict
from typing import Iterator, Optional

# Third-party library imports
from firebase_functions import https_fn, logger, options

# Local application imports
from identity import identity
from quota import quota
from relay import relay
from shared.json_utils import convert_keys

GEMINI_API_KEY_SECRET = "GEMINI_API_KEY"
RELAY_FUNCTION_TIMEOUT = 120

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

# HTTP status and status-line prefix for errors raised before a stream opens.
HTTP_ERRORS = {
    https_fn.FunctionsErrorCode.UNAUTHENTICATED: (401, "Unauthorized"),
    https_fn.FunctionsErrorCode.INVALID_ARGUMENT: (400, "Bad Request"),
    https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED: (429, "Too Many Requests"),
    https_fn.FunctionsErrorCode.FAILED_PRECONDITION: (500, "Server Error"),
}


@https_fn.on_call(
    secrets=[GEMINI_API_KEY_SECRET],
    timeout_sec=RELAY_FUNCTION_TIMEOUT,
    memory=options.MemoryOption.MB_512,
)
def send_message(req: https_fn.CallableRequest) -> dict:
    """
    Sends a message to Gemini and returns the complete reply.

    Args:
        req (https_fn.CallableRequest): The request, containing the message and
            optionally the provider, conversationId and prior history turns.

    Returns:
        A dictionary representation of the SendMessageResult object.
    """
    try:
        prepared = relay.prepare(identity.CallableIdentity(req), req.data)
        result = relay.send(prepared)
    except https_fn.HttpsError:
        raise
    except Exception as e:
        logger.error(f"Error in send_message: {e}")
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INTERNAL,
            f"Failed to process message: {str(e) or 'Unknown error'}",
        )

    return convert_keys(asdict(result), "snake_to_camel")


def _text_response(body: str, status: int) -> https_fn.Response:
    return https_fn.Response(body, status=status, headers=CORS_HEADERS)


def _error_response(error: https_fn.HttpsError) -> https_fn.Response:
    status, prefix = HTTP_ERRORS.get(error.code, (500, "Error"))
    return _text_response(f"{prefix}: {error.message}", status)


def _prepend(
    first_fragment: Optional[str], fragments: Iterator[str]
) -> Iterator[str]:
    if first_fragment is None:
        return fragments
    return itertools.chain([first_fragment], fragments)


def _event_stream(fragments: Iterator[str]):
    """
    Emits one event per reply fragment, then a final done event.

    Once the first byte is sent the status can no longer change, so a failure
    mid-stream is only logged and the stream ends without a done event.
    """
    try:
        for fragment in fragments:
            yield relay.sse_event({"content": fragment})
        yield relay.sse_event({"done": True})
    except Exception as e:
        logger.error(f"Error in stream_message after the stream started: {e}")


@https_fn.on_request(
    secrets=[GEMINI_API_KEY_SECRET],
    timeout_sec=RELAY_FUNCTION_TIMEOUT,
    memory=options.MemoryOption.MB_512,
)
def stream_message(req: https_fn.Request) -> https_fn.Response:
    """
    Streams a Gemini reply as server-sent events.

    Expects a POST with a JSON body `{message, provider?, history?}` and an
    `Authorization: Bearer <Firebase ID token>` header.
    """
    if req.method == "OPTIONS":
        return _text_response("", 204)
    if req.method != "POST":
        return _text_response("Method Not Allowed", 405)

    try:
        prepared = relay.prepare(
            identity.BearerTokenIdentity(req.headers.get("Authorization")),
            req.get_json(silent=True),
        )
        # The first fragment is pulled before responding, so a request the
        # model rejects outright still gets an error status.
        fragments = relay.stream(prepared)
        first_fragment = next(fragments, None)
    except https_fn.HttpsError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"Error in stream_message: {e}")
        return _text_response(f"Error: {str(e) or 'Unknown error'}", 500)

    return https_fn.Response(
        _event_stream(_prepend(first_fragment, fragments)),
        status=200,
        content_type="text/event-stream",
        headers={**CORS_HEADERS, "Cache-Control": "no-cache"},
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def check_user_quota(req: https_fn.CallableRequest) -> dict:
    """
    Returns the caller's quota status for today.

    Returns:
        A dictionary representation of the QuotaStatus object.
    """
    user_id = identity.CallableIdentity(req).resolve_user_id()
    return asdict(quota.query_status(user_id))
