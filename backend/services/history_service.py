"""History service: daily net-worth snapshots, local and remote.

Snapshots live in two places: a local list in client storage (always
available, drives the trend chart) and the ``portfolio_history`` table in
the remote store. Reads merge the two with the remote side winning on
conflicting dates; writes go local first, then upsert remotely.
"""

import logging
import threading
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from models.portfolio_history import PortfolioHistoryEntry
from services.client_storage import HISTORY_KEY, ClientStorage
from services.exceptions import RemoteStoreError
from services.types import HistoryEntry, SyncResult
from utils.debounce import DebouncedTask

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class HistoryService:
    """Maintains one total-value snapshot per calendar day."""

    def __init__(
        self,
        storage: ClientStorage,
        session_factory: Optional[sessionmaker] = None,
        demo_mode: bool = False,
        sync_delay: float = 2.0,
        today: Callable[[], date] = date.today,
    ):
        """Initialize the service.

        Args:
            storage: Client storage holding the local history list.
            session_factory: Remote store sessions. None disables remote
                            reads and writes.
            demo_mode: Serve the demo history and never write anywhere.
            sync_delay: Debounce delay before a changed total is recorded.
            today: Returns the current local calendar day.
        """
        self._storage = storage
        self._session_factory = session_factory
        self._demo_mode = demo_mode
        self._today = today
        self._lock = threading.Lock()
        self._history: list[HistoryEntry] = []
        self._debounce = DebouncedTask(self._record_pending, sync_delay, name="history-sync")

    @property
    def history(self) -> list[HistoryEntry]:
        return list(self._history)

    @property
    def remote_enabled(self) -> bool:
        return self._session_factory is not None and not self._demo_mode

    @property
    def sync_pending(self) -> bool:
        return self._debounce.pending

    def close(self) -> None:
        """Cancel any pending snapshot write."""
        self._debounce.close()

    @staticmethod
    def reconcile(
        remote: Iterable[HistoryEntry], local: Iterable[HistoryEntry]
    ) -> list[HistoryEntry]:
        """Merge two snapshot lists by date.

        Remote entries replace local ones on the same date; entries on only
        one side are kept. The result is sorted ascending by date.
        """
        merged: dict[date, HistoryEntry] = {}
        for entry in local:
            merged[entry.date] = entry
        for entry in remote:
            merged[entry.date] = entry
        return [merged[d] for d in sorted(merged)]

    def load_local(self) -> list[HistoryEntry]:
        """Hydrate the in-memory list from client storage (or the demo set)."""
        if self._demo_mode:
            from services.demo_data import demo_history

            entries = demo_history(self._today())
        else:
            entries = self._read_local()
        with self._lock:
            self._history = entries
        return list(entries)

    def fetch_remote(self) -> list[HistoryEntry]:
        """Merge remote history into the local list and persist the result.

        Remote failures are logged; the local list keeps serving reads.
        """
        if not self.remote_enabled:
            return self.history
        try:
            remote = self._remote_list()
        except RemoteStoreError:
            logger.warning("History: remote fetch failed, using local history", exc_info=True)
            return self.history

        with self._lock:
            self._history = self.reconcile(remote, self._history)
            merged = list(self._history)
        self._write_local(merged)
        logger.info("History: merged %d remote entries (%d total)", len(remote), len(merged))
        return merged

    def schedule_snapshot(self, total_value: Decimal) -> None:
        """Record ``total_value`` for today once it stops changing."""
        if self._demo_mode or total_value == 0:
            return
        self._debounce.arm(Decimal(total_value))

    def flush(self) -> bool:
        """Write a pending debounced snapshot immediately."""
        return self._debounce.flush()

    def record_snapshot(self, total_value: Decimal, today: Optional[date] = None) -> bool:
        """Create or overwrite today's snapshot, locally then remotely.

        Returns True when the local list changed. A zero total, or a total
        equal to today's existing entry, is ignored.
        """
        if self._demo_mode or total_value == 0:
            return False
        today = today or self._today()
        value = to_cents(total_value)

        with self._lock:
            last = self._history[-1] if self._history else None
            if last is not None and last.date == today and last.value == value:
                return False
            kept = [h for h in self._history if h.date != today]
            self._history = self.reconcile([HistoryEntry(date=today, value=value)], kept)
            updated = list(self._history)
        self._write_local(updated)
        logger.info("History: recorded %s for %s", value, today.isoformat())

        if self.remote_enabled:
            try:
                self._remote_upsert([HistoryEntry(date=today, value=value)])
            except RemoteStoreError:
                logger.warning("History: remote sync failed for %s", today.isoformat(), exc_info=True)
        return True

    def migrate(
        self,
        current_total: Decimal,
        local: Optional[list[HistoryEntry]] = None,
        today: Optional[date] = None,
    ) -> SyncResult:
        """Bulk-upsert local history to the remote store.

        Today's entry is added from ``current_total`` when missing.
        """
        if self._demo_mode:
            return SyncResult(success=False, message="Cannot migrate in demo mode")
        if self._session_factory is None:
            return SyncResult(success=False, message="Remote store is not configured")

        today = today or self._today()
        entries = list(local) if local is not None else self._read_local()
        if not any(e.date == today for e in entries):
            entries.append(HistoryEntry(date=today, value=to_cents(current_total)))

        try:
            self._remote_upsert(entries)
        except RemoteStoreError as e:
            logger.warning("History: migration failed", exc_info=True)
            return SyncResult(success=False, message=str(e))

        logger.info("History: migrated %d entries", len(entries))
        return SyncResult(success=True, message=f"Synced {len(entries)} entries", count=len(entries))

    def _record_pending(self, total_value: Decimal) -> None:
        self.record_snapshot(total_value)

    def _read_local(self) -> list[HistoryEntry]:
        raw = self._storage.get(HISTORY_KEY) or []
        entries: list[HistoryEntry] = []
        for item in raw:
            try:
                entries.append(
                    HistoryEntry(
                        date=date.fromisoformat(item["date"]),
                        value=Decimal(str(item["value"])),
                    )
                )
            except (KeyError, TypeError, ValueError, InvalidOperation):
                logger.debug("History: skipping invalid local entry %r", item)
        # Older caches may hold duplicates; keep the last write per date
        return self.reconcile([], entries)

    def _write_local(self, entries: list[HistoryEntry]) -> None:
        self._storage.set(
            HISTORY_KEY,
            [{"date": e.date.isoformat(), "value": str(e.value)} for e in entries],
        )

    def _remote_list(self) -> list[HistoryEntry]:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(PortfolioHistoryEntry)
                    .order_by(PortfolioHistoryEntry.date.asc())
                    .all()
                )
                return [HistoryEntry(date=r.date, value=Decimal(r.total_value)) for r in rows]
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"Failed to read history: {e}") from e

    def _remote_upsert(self, entries: list[HistoryEntry]) -> None:
        """Insert or update one row per date. Last write wins."""
        entries = self.reconcile([], entries)
        try:
            with self._session_factory() as db:
                try:
                    self._apply_upserts(db, entries)
                    db.commit()
                except IntegrityError:
                    # A concurrent writer inserted one of the dates; those rows now update
                    db.rollback()
                    self._apply_upserts(db, entries)
                    db.commit()
                    logger.info("History: upsert retried after concurrent insert")
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"Failed to write history: {e}") from e

    @staticmethod
    def _apply_upserts(db: Session, entries: list[HistoryEntry]) -> None:
        existing = {
            row.date: row
            for row in db.query(PortfolioHistoryEntry)
            .filter(PortfolioHistoryEntry.date.in_([e.date for e in entries]))
            .all()
        }
        for entry in entries:
            row = existing.get(entry.date)
            if row is None:
                db.add(PortfolioHistoryEntry(date=entry.date, total_value=entry.value))
            else:
                row.total_value = entry.value
