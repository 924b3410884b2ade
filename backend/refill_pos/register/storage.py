"""
Durable register state: the cart and the offline queue.

Stored in a small local SQLite database through SQLAlchemy so both survive a
restart of the register. Sale history and the catalog are caches and are not
stored here.
"""

from __future__ import annotations

import json

from sqlalchemy import Column, Integer, String, Text, create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from refill_pos.time_utils import utcnow, to_utc_z

Base = declarative_base()


class CartState(Base):
    __tablename__ = "cart_state"

    id = Column(Integer, primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(String(32), nullable=False)


class QueuedOperationRow(Base):
    __tablename__ = "queued_operations"

    id = Column(String(64), primary_key=True)
    position = Column(Integer, nullable=False, index=True)
    type = Column(String(32), nullable=False)
    payload = Column(Text, nullable=False)
    enqueued_at = Column(String(32), nullable=False)
    retries = Column(Integer, nullable=False, default=0)


class LocalStore:
    def __init__(self, url: str = "sqlite://"):
        kwargs = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, or every session would see an empty database
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **kwargs)

        if url.startswith("sqlite"):
            @event.listens_for(self.engine, "connect")
            def _on_connect(dbapi_conn, _):
                cur = dbapi_conn.cursor()
                try:
                    cur.execute("PRAGMA synchronous=FULL;")
                finally:
                    cur.close()

        Base.metadata.create_all(self.engine)
        self._Session = sessionmaker(bind=self.engine, autoflush=False)

    def load_cart(self) -> dict:
        with self._Session() as session:
            row = session.get(CartState, 1)
            if row is None:
                return {"lines": []}
            return json.loads(row.payload)

    def save_cart(self, data: dict) -> None:
        with self._Session() as session:
            row = session.get(CartState, 1)
            if row is None:
                row = CartState(id=1)
                session.add(row)
            row.payload = json.dumps(data)
            row.updated_at = to_utc_z(utcnow())
            session.commit()

    def load_queue(self) -> list[dict]:
        with self._Session() as session:
            rows = session.query(QueuedOperationRow).order_by(QueuedOperationRow.position.asc()).all()
            return [
                {
                    "id": row.id,
                    "type": row.type,
                    "payload": json.loads(row.payload),
                    "enqueued_at": row.enqueued_at,
                    "retries": row.retries,
                }
                for row in rows
            ]

    def save_queue(self, operations: list[dict]) -> None:
        """Replace the stored queue with operations, in order, in one transaction."""
        with self._Session() as session:
            session.query(QueuedOperationRow).delete()
            for position, op in enumerate(operations):
                session.add(QueuedOperationRow(
                    id=op["id"],
                    position=position,
                    type=op["type"],
                    payload=json.dumps(op["payload"]),
                    enqueued_at=op["enqueued_at"],
                    retries=op.get("retries", 0),
                ))
            session.commit()

    def close(self) -> None:
        self.engine.dispose()
