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
"""
Resolves the Firebase user behind a request.

Callable functions receive the caller's identity from the Functions runtime,
while plain HTTP functions must verify the bearer token themselves. Both are
exposed through the same `IdentityResolver` interface so the relay pipeline
does not care which entry point it was reached from.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from firebase_admin import auth, exceptions
from firebase_functions import https_fn

from shared import firebase_utils

BEARER_PREFIX = "Bearer "


class IdentityResolver(Protocol):
    """Interface for resolving the authenticated user id of a request."""

    def resolve_user_id(self) -> str:
        """
        Raises:
            https_fn.HttpsError: UNAUTHENTICATED if no valid identity is present.
        """
        ...


@dataclass
class CallableIdentity:
    """Reads the identity the Functions runtime attached to a callable request."""

    request: https_fn.CallableRequest

    def resolve_user_id(self) -> str:
        if not self.request.auth:
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.UNAUTHENTICATED,
                "User must be authenticated to use this function",
            )
        return self.request.auth.uid


@dataclass
class BearerTokenIdentity:
    """Verifies a Firebase ID token sent as `Authorization: Bearer <token>`."""

    authorization_header: Optional[str]

    def resolve_user_id(self) -> str:
        header = self.authorization_header
        if not header or not header.startswith(BEARER_PREFIX):
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.UNAUTHENTICATED,
                "Missing or invalid Authorization header",
            )

        token = header[len(BEARER_PREFIX) :]
        app = firebase_utils.get_app()
        try:
            decoded_token = auth.verify_id_token(token, app=app)
        except (ValueError, exceptions.FirebaseError) as e:
            raise https_fn.HttpsError(
                https_fn.FunctionsErrorCode.UNAUTHENTICATED, "Invalid token"
            ) from e
        return decoded_token["uid"]
