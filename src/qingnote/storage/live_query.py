"""Live (observable) queries over the relational store.

An ``InvalidationTracker`` hooks the session factory and records which
tables every committed transaction wrote to, including tables reached
through ON DELETE CASCADE foreign keys. Each ``LiveQuery`` watches a set
of tables; when any of them is touched, the query is re-run on the
tracker's notifier thread and the fresh snapshot is pushed to every
subscriber.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import (Any, Callable, Dict, Generic, Iterable, List, Optional,
                    Set, TypeVar)

from sqlalchemy import event

from qingnote.models.db_models import cascade_dependents

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TOUCHED_KEY = "qingnote_touched_tables"


class InvalidationTracker:
    """Collects written tables per transaction and notifies live queries.

    Args:
        session_factory: The sessionmaker every DAO writes through.
        cascades: Table -> tables removed with it. Defaults to the
            ON DELETE CASCADE graph of the declared models.
    """

    def __init__(self, session_factory, cascades: Optional[Dict[str, Set[str]]] = None):
        self._session_factory = session_factory
        self._cascades = cascades if cascades is not None else cascade_dependents()
        self._queries: List["LiveQuery[Any]"] = []
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="qingnote-invalidation"
        )
        self._closed = False

        event.listen(session_factory, "after_flush", self._after_flush)
        event.listen(session_factory, "do_orm_execute", self._on_orm_execute)
        event.listen(session_factory, "after_commit", self._after_commit)
        event.listen(session_factory, "after_rollback", self._after_rollback)

    # -- session hooks -------------------------------------------------

    def _after_flush(self, session, flush_context) -> None:
        touched = session.info.setdefault(_TOUCHED_KEY, set())
        for obj in (*session.new, *session.dirty):
            table = getattr(obj, "__tablename__", None)
            if table:
                touched.add(table)
        for obj in session.deleted:
            table = getattr(obj, "__tablename__", None)
            if table:
                touched |= self.expand([table])

    def _on_orm_execute(self, orm_execute_state) -> None:
        # Bulk UPDATE / DELETE statements bypass the flush
        if not (orm_execute_state.is_update or orm_execute_state.is_delete
                or orm_execute_state.is_insert):
            return
        table = None
        mapper = orm_execute_state.bind_mapper
        if mapper is not None:
            table = mapper.local_table.name
        else:
            table = getattr(getattr(orm_execute_state.statement, "table", None), "name", None)
        if table:
            touched = orm_execute_state.session.info.setdefault(_TOUCHED_KEY, set())
            if orm_execute_state.is_delete:
                touched |= self.expand([table])
            else:
                touched.add(table)

    def _after_commit(self, session) -> None:
        tables = session.info.pop(_TOUCHED_KEY, None)
        if tables:
            self.notify(tables)

    def _after_rollback(self, session) -> None:
        session.info.pop(_TOUCHED_KEY, None)

    # -- registration ----------------------------------------------------

    def expand(self, tables: Iterable[str]) -> Set[str]:
        """Add every table reached by cascade deletes from ``tables``."""
        expanded = set(tables)
        for table in list(expanded):
            expanded |= self._cascades.get(table, set())
        return expanded

    def register(self, query: "LiveQuery[Any]") -> None:
        with self._lock:
            if query not in self._queries:
                self._queries.append(query)

    def unregister(self, query: "LiveQuery[Any]") -> None:
        with self._lock:
            if query in self._queries:
                self._queries.remove(query)

    def notify(self, tables: Iterable[str]) -> None:
        """Schedule a refresh of every registered query watching ``tables``."""
        touched = set(tables)
        with self._lock:
            affected = [q for q in self._queries if q.tables & touched]
        if affected:
            logger.debug(
                f"Invalidated tables {sorted(touched)}: refreshing {len(affected)} live queries"
            )
        for query in affected:
            query._schedule_refresh()

    def submit(self, fn: Callable[[], None]) -> None:
        """Run ``fn`` on the notifier thread."""
        if self._closed:
            logger.debug("Invalidation tracker closed, dropping notification")
            return
        try:
            self._executor.submit(fn)
        except RuntimeError:
            # Executor shut down between the check and the submit
            logger.debug("Invalidation tracker closed, dropping notification")

    def wait_idle(self, timeout: Optional[float] = 5.0) -> None:
        """Block until all refreshes scheduled so far have been delivered."""
        if self._closed:
            return
        self._executor.submit(lambda: None).result(timeout=timeout)

    def shutdown(self) -> None:
        """Detach from the session factory and stop the notifier thread."""
        if self._closed:
            return
        self._closed = True
        for name, fn in (
            ("after_flush", self._after_flush),
            ("do_orm_execute", self._on_orm_execute),
            ("after_commit", self._after_commit),
            ("after_rollback", self._after_rollback),
        ):
            if event.contains(self._session_factory, name, fn):
                event.remove(self._session_factory, name, fn)
        with self._lock:
            self._queries.clear()
        self._executor.shutdown(wait=True)


class Subscription:
    """Handle returned by ``LiveQuery.subscribe``; cancel to stop updates."""

    def __init__(self, query: "LiveQuery[Any]", observer: Callable[[Any], None]):
        self._query = query
        self._observer = observer
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._query._remove_observer(self._observer)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


class LiveQuery(Generic[T]):
    """A read whose result is re-pushed to subscribers whenever its tables change.

    The query only watches the store while it has at least one subscriber.
    New subscribers receive the latest snapshot (computing it if needed) on
    the notifier thread. ``get()`` runs the query once synchronously.

    Args:
        tracker: The tracker of the database being queried.
        tables: Names of the tables the result depends on.
        compute: Runs the query and returns a fresh snapshot.
        name: Label used in log messages.
        read: Used by ``get()`` instead of ``compute`` when running the
            query must not affect what subscribers hold.
    """

    def __init__(
        self,
        tracker: InvalidationTracker,
        tables: Iterable[str],
        compute: Callable[[], T],
        name: str = "live_query",
        read: Optional[Callable[[], T]] = None,
    ):
        self._tracker = tracker
        self.tables = frozenset(tables)
        self._compute = compute
        self._read = read or compute
        self.name = name
        self._observers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._has_value = False
        self._refresh_pending = False

    def __repr__(self) -> str:
        return f"<LiveQuery {self.name} tables={sorted(self.tables)}>"

    @property
    def value(self) -> Optional[T]:
        """The last snapshot pushed to subscribers (None before the first push)."""
        return self._value

    @property
    def has_value(self) -> bool:
        return self._has_value

    @property
    def has_observers(self) -> bool:
        with self._lock:
            return bool(self._observers)

    def get(self) -> T:
        """Run the query once on the calling thread."""
        return self._read()

    def subscribe(self, observer: Callable[[T], None]) -> Subscription:
        """Start receiving snapshots; the first one arrives asynchronously."""
        with self._lock:
            first = not self._observers
            self._observers.append(observer)
            has_value = self._has_value
        if first:
            self._tracker.register(self)
        if has_value and not first:
            self._tracker.submit(lambda: self._deliver(observer, self._value))
        else:
            self._schedule_refresh()
        return Subscription(self, observer)

    def _remove_observer(self, observer: Callable[[T], None]) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)
            empty = not self._observers
            if empty:
                # Stale once nobody is watching
                self._has_value = False
        if empty:
            self._tracker.unregister(self)

    def _schedule_refresh(self) -> None:
        with self._lock:
            if self._refresh_pending:
                return
            self._refresh_pending = True
        self._tracker.submit(self._refresh)

    def _refresh(self) -> None:
        with self._lock:
            self._refresh_pending = False
            if not self._observers:
                return
        try:
            value = self._compute()
        except Exception as e:
            logger.error(f"Live query {self.name} failed to refresh: {e}", exc_info=True)
            return
        with self._lock:
            self._value = value
            self._has_value = True
            observers = list(self._observers)
        for observer in observers:
            self._deliver(observer, value)

    def _deliver(self, observer: Callable[[T], None], value: T) -> None:
        try:
            observer(value)
        except Exception as e:
            logger.error(f"Observer of {self.name} raised: {e}", exc_info=True)
