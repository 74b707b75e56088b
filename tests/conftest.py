from __future__ import annotations

import copy
import itertools
import threading
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable

import pytest
from firebase_admin import auth


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict[str, Any] | None, reference: "FakeDocument") -> None:
        self.id = doc_id
        self._data = data
        self.reference = reference

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeWatch:
    def __init__(self, collection: "FakeCollection", callback: Callable) -> None:
        self._collection = collection
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False
        self._collection.watches.remove(self)


class FakeDocument:
    def __init__(self, collection: "FakeCollection", doc_id: str) -> None:
        self.collection = collection
        self.id = doc_id

    def get(self) -> FakeSnapshot:
        with self.collection.db.lock:
            data = self.collection.docs.get(self.id)
        return FakeSnapshot(self.id, data, self)

    def set(self, data: dict[str, Any], merge: bool = False) -> None:
        with self.collection.db.lock:
            current = self.collection.docs.get(self.id) if merge else None
            self.collection.docs[self.id] = {**(current or {}), **copy.deepcopy(data)}
        self.collection.notify()

    def update(self, data: dict[str, Any]) -> None:
        with self.collection.db.lock:
            if self.id not in self.collection.docs:
                raise KeyError(f"No document to update: {self.collection.name}/{self.id}")
            self.collection.docs[self.id].update(copy.deepcopy(data))
        self.collection.notify()

    def delete(self) -> None:
        with self.collection.db.lock:
            self.collection.docs.pop(self.id, None)
        self.collection.notify()


class FakeCollection:
    def __init__(self, db: "FakeFirestore", name: str) -> None:
        self.db = db
        self.name = name
        self.docs: dict[str, dict[str, Any]] = {}
        self.watches: list[FakeWatch] = []

    def document(self, doc_id: str) -> FakeDocument:
        return FakeDocument(self, doc_id)

    def add(self, data: dict[str, Any]) -> tuple[datetime, FakeDocument]:
        ref = self.document(f"{self.name}-{next(self.db.ids)}")
        ref.set(data)
        return datetime.now(timezone.utc), ref

    def stream(self) -> list[FakeSnapshot]:
        with self.db.lock:
            items = list(self.docs.items())
        return [FakeSnapshot(doc_id, copy.deepcopy(data), self.document(doc_id)) for doc_id, data in items]

    def on_snapshot(self, callback: Callable) -> FakeWatch:
        watch = FakeWatch(self, callback)
        self.watches.append(watch)
        callback(self.stream(), [], datetime.now(timezone.utc))
        return watch

    def notify(self) -> None:
        for watch in list(self.watches):
            if watch.active:
                watch.callback(self.stream(), [], datetime.now(timezone.utc))


class FakeFirestore:
    """Client Firestore en mémoire : collection / document / add / stream / on_snapshot"""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.ids = itertools.count(1)
        self.collections: dict[str, FakeCollection] = {}

    def collection(self, name: str) -> FakeCollection:
        with self.lock:
            if name not in self.collections:
                self.collections[name] = FakeCollection(self, name)
            return self.collections[name]

    def seed(self, name: str, doc_id: str, data: dict[str, Any]) -> None:
        self.collection(name).document(doc_id).set(data)

    def data(self, name: str) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self.collection(name).docs)


class FakeAuth:
    """Sous-ensemble de firebase_admin.auth utilisé par l'application"""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.claims: dict[str, dict[str, Any]] = {}
        self.tokens: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def create_user(self, email: str, password: str, display_name: str | None = None) -> SimpleNamespace:
        if any(u["email"] == email for u in self.users.values()):
            raise auth.EmailAlreadyExistsError("EMAIL_EXISTS", None, None)
        uid = f"uid-{next(self._ids)}"
        self.users[uid] = {"email": email, "password": password, "display_name": display_name}
        return SimpleNamespace(uid=uid, email=email)

    def set_custom_user_claims(self, uid: str, claims: dict[str, Any]) -> None:
        self.claims[uid] = claims

    def update_user(self, uid: str, **changes: Any) -> None:
        if uid not in self.users:
            raise auth.UserNotFoundError("USER_NOT_FOUND")
        self.users[uid].update(changes)

    def delete_user(self, uid: str) -> None:
        if uid not in self.users:
            raise auth.UserNotFoundError("USER_NOT_FOUND")
        del self.users[uid]

    def verify_id_token(self, token: str) -> dict[str, Any]:
        if token not in self.tokens:
            raise auth.InvalidIdTokenError("invalid token")
        return self.tokens[token]

    def issue_token(self, token: str, uid: str, email: str = "") -> str:
        self.tokens[token] = {"uid": uid, "email": email}
        return token


class FakeBlob:
    def __init__(self, name: str) -> None:
        self.name = name
        self.content: bytes | None = None
        self.content_type: str | None = None
        self.public = False

    def upload_from_string(self, content: bytes, content_type: str) -> None:
        self.content = content
        self.content_type = content_type

    def make_public(self) -> None:
        self.public = True


class FakeBucket:
    name = "flotte.appspot.com"

    def __init__(self) -> None:
        self.blobs: dict[str, FakeBlob] = {}

    def blob(self, path: str) -> FakeBlob:
        self.blobs[path] = FakeBlob(path)
        return self.blobs[path]


@pytest.fixture
def db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def fake_auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def make_db() -> Callable[[], FakeFirestore]:
    return FakeFirestore


@pytest.fixture
def bucket() -> FakeBucket:
    return FakeBucket()
