"""Shared fixtures: an in-memory Firestore double and a recording push transport."""

import copy
import datetime
import operator

import pytest

from race_notifier_service.app.fcm_client import PushDeliveryError, TokenUnregisteredError
from race_notifier_service.app.services.delivery_client import NotificationDeliveryClient

NOW = datetime.datetime(2025, 5, 25, 12, 0, 0, tzinfo=datetime.timezone.utc)

_MISSING = object()
_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocumentReference:
    def __init__(self, store, collection_name, doc_id):
        self._store = store
        self._collection_name = collection_name
        self.id = doc_id

    def _docs(self):
        return self._store.data.setdefault(self._collection_name, {})

    def get(self):
        self._store.check_available(self._collection_name)
        return FakeSnapshot(self, copy.deepcopy(self._docs().get(self.id)))

    def set(self, data, merge=False):
        self._store.check_available(self._collection_name)
        if merge and self.id in self._docs():
            self._docs()[self.id].update(copy.deepcopy(data))
        else:
            self._docs()[self.id] = copy.deepcopy(data)

    def update(self, data):
        self._store.check_available(self._collection_name)
        if self.id not in self._docs():
            raise KeyError(f"No document to update: {self._collection_name}/{self.id}")
        self._docs()[self.id].update(copy.deepcopy(data))

    def delete(self):
        self._docs().pop(self.id, None)


class FakeQuery:
    def __init__(self, store, collection_name, filters=()):
        self._store = store
        self._collection_name = collection_name
        self._filters = list(filters)

    def where(self, field_path, op_string, value):
        return FakeQuery(
            self._store, self._collection_name, self._filters + [(field_path, op_string, value)]
        )

    def _matches(self, doc):
        for field_path, op_string, value in self._filters:
            field_value = doc.get(field_path, _MISSING)
            if field_value is _MISSING or (field_value is None and value is not None):
                return False
            if not _OPERATORS[op_string](field_value, value):
                return False
        return True

    def stream(self):
        self._store.check_available(self._collection_name)
        docs = self._store.data.get(self._collection_name, {})
        for doc_id, doc in list(docs.items()):
            if self._matches(doc):
                ref = FakeDocumentReference(self._store, self._collection_name, doc_id)
                yield FakeSnapshot(ref, copy.deepcopy(doc))

    def get(self):
        return list(self.stream())


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocumentReference(self._store, self._collection_name, doc_id)


class FakeWriteBatch:
    def __init__(self, store):
        self._store = store
        self._operations = []

    def set(self, reference, data, merge=False):
        self._operations.append(lambda: reference.set(data, merge=merge))

    def update(self, reference, data):
        self._operations.append(lambda: reference.update(data))

    def delete(self, reference):
        self._operations.append(reference.delete)

    def commit(self):
        self._store.committed_batch_sizes.append(len(self._operations))
        for apply_operation in self._operations:
            apply_operation()
        self._operations = []


class FakeFirestore:
    """Just enough of google.cloud.firestore.Client for the notifier jobs."""

    def __init__(self):
        self.data = {}
        self.unavailable_collections = set()
        self.committed_batch_sizes = []

    def check_available(self, collection_name):
        if collection_name in self.unavailable_collections:
            raise ConnectionError(f"Firestore unavailable for {collection_name}")

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeWriteBatch(self)

    # Test helpers
    def add(self, collection_name, doc_id, data):
        self.data.setdefault(collection_name, {})[doc_id] = copy.deepcopy(data)

    def docs(self, collection_name):
        return self.data.get(collection_name, {})


class RecordingTransport:
    """Push transport double that records sends and fails on configured tokens."""

    def __init__(self):
        self.sent = []
        self.validated = []
        self.failing_tokens = set()
        self.unregistered_tokens = set()
        self.unreachable_tokens = set()

    def send(self, message):
        if message.token in self.unregistered_tokens:
            raise TokenUnregisteredError("Requested entity was not found.")
        if message.token in self.failing_tokens:
            raise PushDeliveryError("Internal error encountered.")
        self.sent.append(message)
        return f"projects/test/messages/{len(self.sent)}"

    def validate_token(self, token):
        self.validated.append(token)
        if token in self.unregistered_tokens:
            raise TokenUnregisteredError("Requested entity was not found.")
        if token in self.unreachable_tokens:
            raise PushDeliveryError("The service is currently unavailable.")


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def delivery_client(transport):
    return NotificationDeliveryClient(transport)


def add_user(db, user_id, token, preferences):
    db.add("user_preferences", user_id, {"fcmToken": token, "preferences": preferences})
