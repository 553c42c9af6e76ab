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
"""Per-user daily message quota backed by Firestore."""

import logging
from dataclasses import asdict
from datetime import datetime, timezone

from firebase_admin import firestore
from firebase_functions import https_fn
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from shared import firebase_utils
from shared.api import QuotaStatus, UsageCounter
from shared.constants import DAILY_MESSAGE_LIMIT
from shared.firebase_constants import USAGE_DAILY_COLLECTION
from shared.json_utils import convert_keys

logger = logging.getLogger(__name__)

QUOTA_EXCEEDED_MESSAGE = (
    "Daily quota exceeded. You have reached the limit of "
    f"{DAILY_MESSAGE_LIMIT} messages per day."
)


def today() -> str:
    """Returns the current UTC calendar day as an ISO date (YYYY-MM-DD)."""
    return datetime.now(timezone.utc).date().isoformat()


def usage_doc_id(user_id: str, date: str) -> str:
    return f"{user_id}_{date}"


def _usage_doc_ref(db, user_id: str, date: str):
    return db.collection(USAGE_DAILY_COLLECTION).document(usage_doc_id(user_id, date))


def _count_from_snapshot(snapshot) -> int:
    if not snapshot.exists:
        return 0
    return (snapshot.to_dict() or {}).get("count") or 0


def _consume_in_transaction(transaction, doc_ref, user_id: str, date: str) -> int:
    """
    Reads the counter and writes back count + 1 within `transaction`.

    Raises:
        https_fn.HttpsError: RESOURCE_EXHAUSTED if the limit is already
            reached. Nothing is written in that case.
    """
    snapshot = doc_ref.get(transaction=transaction)
    count = _count_from_snapshot(snapshot)
    if count >= DAILY_MESSAGE_LIMIT:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED, QUOTA_EXCEEDED_MESSAGE
        )

    counter = UsageCounter(user_id=user_id, date=date, count=count + 1)
    counter_json = convert_keys(asdict(counter), "snake_to_camel")
    counter_json["lastUpdated"] = SERVER_TIMESTAMP
    transaction.set(doc_ref, counter_json, merge=True)
    return counter.count


def check_and_consume(user_id: str, db=None) -> int:
    """
    Consumes one message from the user's quota for today.

    The read and the increment run in one Firestore transaction, so two
    concurrent requests from the same user cannot both take the last slot.

    Args:
        user_id (str): The authenticated user's id.
        db: Optional Firestore client. Defaults to the app's client.

    Returns:
        int: The user's message count for today, including this message.

    Raises:
        https_fn.HttpsError: RESOURCE_EXHAUSTED if the daily limit is reached.
    """
    if not user_id:
        raise ValueError("user_id must not be empty.")
    if db is None:
        db = firebase_utils.get_db()

    date = today()
    doc_ref = _usage_doc_ref(db, user_id, date)
    transaction = db.transaction()

    @firestore.transactional
    def _consume_transaction(transaction, doc_ref):
        return _consume_in_transaction(transaction, doc_ref, user_id, date)

    try:
        count = _consume_transaction(transaction, doc_ref)
    except https_fn.HttpsError:
        logger.info(f"Daily quota exhausted for user {user_id} on {date}")
        raise
    return count


def query_status(user_id: str, db=None) -> QuotaStatus:
    """Returns today's usage for the user without consuming any quota."""
    if not user_id:
        raise ValueError("user_id must not be empty.")
    if db is None:
        db = firebase_utils.get_db()

    date = today()
    used = _count_from_snapshot(_usage_doc_ref(db, user_id, date).get())
    return QuotaStatus(
        used=used,
        limit=DAILY_MESSAGE_LIMIT,
        remaining=max(0, DAILY_MESSAGE_LIMIT - used),
        date=date,
    )
