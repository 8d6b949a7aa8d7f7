"""Live queries over SQLAlchemy tables.

A listener registers a ``select()`` over one mapped model. It receives an
initial snapshot straight away, with every matching row reported as
``added``, and a fresh snapshot after each commit that touched the model's
table and changed the query result. Each snapshot carries the full ordered
result (``docs``) and the per-row differences against the previous one
(``changes``).

The feed hooks ``after_flush`` to note which tables a session wrote to and
``after_commit`` to re-run the affected queries in a separate session, so
rolled-back work is never published.
"""
import logging
from dataclasses import dataclass, field
from itertools import chain
from threading import Lock, RLock
from typing import Callable, NamedTuple

from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError

from ridesafe.database import serialize

logger = logging.getLogger(__name__)

_CHANGED_TABLES_KEY = 'ridesafe.changed_tables'


class DocumentChange(NamedTuple):
    change_type: str  # added/modified/removed
    doc_id: str
    data: dict


@dataclass
class Snapshot:
    docs: list[dict]
    changes: list[DocumentChange] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.docs


class _Listener:
    def __init__(self, table_name: str, statement, callback: Callable[[Snapshot], None]):
        self.table_name = table_name
        self.statement = statement
        self.callback = callback
        self.documents: dict[str, dict] = {}
        self.lock = RLock()
        self.active = True


def _document_id(row) -> str:
    identity = inspect(row).identity
    return str(identity[0]) if len(identity) == 1 else ':'.join(str(part) for part in identity)


def diff_documents(previous: dict[str, dict], current: dict[str, dict]) -> list[DocumentChange]:
    changes: list[DocumentChange] = []
    for doc_id, data in current.items():
        if doc_id not in previous:
            changes.append(DocumentChange('added', doc_id, data))
        elif previous[doc_id] != data:
            changes.append(DocumentChange('modified', doc_id, data))
    for doc_id, data in previous.items():
        if doc_id not in current:
            changes.append(DocumentChange('removed', doc_id, data))
    return changes


class ChangeFeed:
    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._listeners: list[_Listener] = []
        self._lock = Lock()
        self._attached = True

        event.listen(session_factory, 'after_flush', self._record_changed_tables)
        event.listen(session_factory, 'after_commit', self._publish)
        event.listen(session_factory, 'after_transaction_end', self._discard)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def listen(self, model, statement, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        listener = _Listener(model.__table__.name, statement, callback)
        with self._lock:
            self._listeners.append(listener)

        self._refresh(listener, initial=True)

        def unsubscribe() -> None:
            listener.active = False
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def notify(self, table_names) -> None:
        """Re-run every live query over any of ``table_names``."""
        table_names = set(table_names)
        with self._lock:
            affected = [listener for listener in self._listeners if listener.table_name in table_names]
        for listener in affected:
            self._refresh(listener)

    def close(self) -> None:
        with self._lock:
            for listener in self._listeners:
                listener.active = False
            self._listeners.clear()
        if self._attached:
            event.remove(self._session_factory, 'after_flush', self._record_changed_tables)
            event.remove(self._session_factory, 'after_commit', self._publish)
            event.remove(self._session_factory, 'after_transaction_end', self._discard)
            self._attached = False

    def _record_changed_tables(self, session, flush_context) -> None:
        changed = session.info.setdefault(_CHANGED_TABLES_KEY, set())
        for instance in chain(session.new, session.dirty, session.deleted):
            table = getattr(instance, '__table__', None)
            if table is not None:
                changed.add(table.name)

    def _publish(self, session) -> None:
        changed = session.info.pop(_CHANGED_TABLES_KEY, None)
        if changed:
            self.notify(changed)

    def _discard(self, session, transaction) -> None:
        if transaction.parent is None:
            session.info.pop(_CHANGED_TABLES_KEY, None)

    def _refresh(self, listener: _Listener, initial: bool = False) -> None:
        with listener.lock:
            if not listener.active:
                return

            session = self._session_factory()
            try:
                rows = session.scalars(listener.statement).all()
                current = {_document_id(row): serialize(row) for row in rows}
            except SQLAlchemyError:
                logger.exception('Live query over %s failed.', listener.table_name)
                return
            finally:
                session.close()

            changes = diff_documents(listener.documents, current)
            listener.documents = current
            if not changes and not initial:
                return

            try:
                listener.callback(Snapshot(docs=list(current.values()), changes=changes))
            except Exception:
                logger.exception('Live query callback over %s raised.', listener.table_name)
