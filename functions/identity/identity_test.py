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

from firebase_admin import auth
from firebase_functions import https_fn

from identity import identity


class CallableIdentityTest(unittest.TestCase):

    def test_returns_uid_from_auth_context(self):
        request = MagicMock()
        request.auth.uid = "user-1"

        self.assertEqual(identity.CallableIdentity(request).resolve_user_id(), "user-1")

    def test_missing_auth_is_unauthenticated(self):
        request = MagicMock(auth=None)

        with self.assertRaises(https_fn.HttpsError) as cm:
            identity.CallableIdentity(request).resolve_user_id()

        self.assertEqual(
            cm.exception.code, https_fn.FunctionsErrorCode.UNAUTHENTICATED
        )


@patch("identity.identity.firebase_utils.get_app")
class BearerTokenIdentityTest(unittest.TestCase):

    @patch("identity.identity.auth.verify_id_token")
    def test_valid_token(self, mock_verify, mock_get_app):
        mock_verify.return_value = {"uid": "user-1"}

        user_id = identity.BearerTokenIdentity("Bearer good-token").resolve_user_id()

        self.assertEqual(user_id, "user-1")
        mock_verify.assert_called_once_with(
            "good-token", app=mock_get_app.return_value
        )

    @patch("identity.identity.auth.verify_id_token")
    def test_missing_or_malformed_header(self, mock_verify, mock_get_app):
        for header in [None, "", "Basic abc", "bearer token"]:
            with self.subTest(header=header):
                with self.assertRaises(https_fn.HttpsError) as cm:
                    identity.BearerTokenIdentity(header).resolve_user_id()
                self.assertEqual(
                    cm.exception.code, https_fn.FunctionsErrorCode.UNAUTHENTICATED
                )
                self.assertIn("Authorization header", cm.exception.message)
        mock_verify.assert_not_called()

    @patch("identity.identity.auth.verify_id_token")
    def test_rejected_token(self, mock_verify, mock_get_app):
        for error in [auth.InvalidIdTokenError("bad token"), ValueError("empty")]:
            with self.subTest(error=error):
                mock_verify.side_effect = error

                with self.assertRaises(https_fn.HttpsError) as cm:
                    identity.BearerTokenIdentity("Bearer bad").resolve_user_id()

                self.assertEqual(
                    cm.exception.code, https_fn.FunctionsErrorCode.UNAUTHENTICATED
                )
                self.assertEqual(cm.exception.message, "Invalid token")


if __name__ == "__main__":
    unittest.main()
