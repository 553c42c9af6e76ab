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
"""In-memory stand-ins for Firestore used by the function tests."""

from typing import Any, Dict, List, Optional, Tuple


class FakeSnapshot:
    def __init__(self, data: Optional[dict]):
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[dict]:
        return dict(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db: "FakeFirestore", collection: str, doc_id: str):
        self._db = db
        self.key = (collection, doc_id)

    def get(self, transaction=None) -> FakeSnapshot:
        return FakeSnapshot(self._db.docs.get(self.key))

    def set(self, data: dict, merge: bool = False) -> None:
        existing = self._db.docs.get(self.key, {}) if merge else {}
        self._db.docs[self.key] = {**existing, **data}


class FakeCollection:
    def __init__(self, db: "FakeFirestore", name: str):
        self._db = db
        self._name = name

    def document(self, doc_id: str) -> FakeDocumentRef:
        return FakeDocumentRef(self._db, self._name, doc_id)

    def add(self, data: dict) -> Tuple[None, FakeDocumentRef]:
        entries = self._db.added.setdefault(self._name, [])
        entries.append(dict(data))
        return None, FakeDocumentRef(self._db, self._name, str(len(entries)))


class FakeTransaction:
    def set(self, doc_ref: FakeDocumentRef, data: dict, merge: bool = False) -> None:
        doc_ref.set(data, merge=merge)


class FakeFirestore:
    """
    Supports the subset of the Firestore client the functions use:
    document get/set (with merge), collection add, and transactional set.
    """

    def __init__(self):
        self.docs: Dict[Tuple[str, str], dict] = {}
        self.added: Dict[str, List[dict]] = {}

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def transaction(self) -> FakeTransaction:
        return FakeTransaction()

    def get_doc(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self.docs.get((collection, doc_id))

    def put_doc(self, collection: str, doc_id: str, data: dict) -> None:
        self.docs[(collection, doc_id)] = dict(data)
