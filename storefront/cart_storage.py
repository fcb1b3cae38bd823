# storefront/cart_storage.py
import json
import uuid
from abc import ABC, abstractmethod

from flask import session
from sqlalchemy import select, delete

from storefront.models import CartSnapshot

CART_SESSION_KEY = "cart_v1"


class CartStorage(ABC):
    """Persistence port for the cart: one JSON-able payload per cart."""

    @abstractmethod
    def get(self): ...

    @abstractmethod
    def set(self, payload: dict): ...

    @abstractmethod
    def clear(self): ...


class MemoryCartStorage(CartStorage):
    def __init__(self, payload=None):
        self.payload = payload

    def get(self):
        return self.payload

    def set(self, payload: dict):
        # round-trip through JSON so callers can't alias stored state
        self.payload = json.loads(json.dumps(payload))

    def clear(self):
        self.payload = None


class FlaskSessionCartStorage(CartStorage):
    """Cart kept in the signed Flask session cookie, one per browser."""

    def __init__(self, key: str = CART_SESSION_KEY):
        self.key = key

    def get(self):
        return session.get(self.key)

    def set(self, payload: dict):
        session[self.key] = payload
        session.modified = True

    def clear(self):
        session.pop(self.key, None)


class SqlCartStorage(CartStorage):
    """One snapshot row per cart id, replaced on every save."""

    def __init__(self, cart_id: str, session_factory):
        self.cart_id = cart_id
        self.session_factory = session_factory

    def get(self):
        with self.session_factory() as db:
            snap = db.execute(
                select(CartSnapshot)
                .where(CartSnapshot.cart_id == self.cart_id)
                .order_by(CartSnapshot.id.desc())
            ).scalars().first()
            if not snap:
                return None
            return json.loads(snap.json_payload)

    def set(self, payload: dict):
        with self.session_factory() as db:
            db.execute(delete(CartSnapshot).where(CartSnapshot.cart_id == self.cart_id))
            db.add(CartSnapshot(cart_id=self.cart_id, json_payload=json.dumps(payload)))
            db.commit()

    def clear(self):
        with self.session_factory() as db:
            db.execute(delete(CartSnapshot).where(CartSnapshot.cart_id == self.cart_id))
            db.commit()


def sql_cart_storage() -> SqlCartStorage:
    """Server-side cart keyed by a random id kept in the Flask session."""
    from storefront.db import main_session

    if "cart_id" not in session:
        session["cart_id"] = uuid.uuid4().hex
    return SqlCartStorage(session["cart_id"], main_session)


def default_cart_storage_factory(backend: str):
    if backend == "sql":
        return sql_cart_storage
    return FlaskSessionCartStorage
