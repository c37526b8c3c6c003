"""
Chunked, partially-failable upserts against the internal store.

Shared by the file importer and the sync orchestrator. Every row runs in its
own savepoint so a failing row is recorded and the rest of the chunk goes
on; chunks run sequentially in input order.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from workforce_sync.models.import_job import ImportStrategy
from workforce_sync.utils.errors import APIError

logger = logging.getLogger(__name__)


DEFAULT_CHUNK_SIZE = 50


@dataclass
class RowError:
    """A row that could not be written."""

    row: int
    message: str
    identifier: Optional[str] = None
    entity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "identifier": self.identifier,
            "entity": self.entity,
            "message": self.message,
        }


@dataclass
class BatchResult:
    """
    Tally of a reconciliation run.

    ``inserted + updated + skipped + errored == total`` always holds; rows
    never reached because of cancellation are not counted.
    """

    entity: str = ""
    total: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    row_errors: List[RowError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated + self.skipped

    def record(self, outcome: str) -> None:
        self.total += 1
        if outcome == "inserted":
            self.inserted += 1
        elif outcome == "updated":
            self.updated += 1
        elif outcome == "skipped":
            self.skipped += 1
        else:
            raise ValueError(f"Unknown row outcome: {outcome}")

    def record_error(self, row: int, message: str, identifier: Optional[str] = None) -> None:
        self.total += 1
        self.errored += 1
        self.row_errors.append(RowError(
            row=row,
            message=message,
            identifier=identifier,
            entity=self.entity or None,
        ))

    def merge(self, other: "BatchResult") -> "BatchResult":
        """Combine two results (e.g. the phases of a sync job) into a new one."""
        entities = [name for name in (self.entity, other.entity) if name]
        return BatchResult(
            entity="+".join(dict.fromkeys(entities)),
            total=self.total + other.total,
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            errored=self.errored + other.errored,
            row_errors=self.row_errors + other.row_errors,
            cancelled=self.cancelled or other.cancelled,
        )

    def counters(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errored,
        }

    def to_dict(self, max_errors: Optional[int] = None) -> Dict[str, Any]:
        errors = self.row_errors if max_errors is None else self.row_errors[:max_errors]
        return {
            "entity": self.entity,
            **self.counters(),
            "cancelled": self.cancelled,
            "row_errors": [e.to_dict() for e in errors],
        }


class ReconcileTarget(Protocol):
    """Entity-specific lookup and write operations used by the reconciler."""

    entity: str

    def natural_key(self, row: Any) -> str:
        ...

    def find_existing(self, session: Session, row: Any) -> Optional[Any]:
        ...

    def create(self, session: Session, row: Any) -> Any:
        ...

    def update(self, session: Session, existing: Any, row: Any) -> Any:
        ...


class BatchReconciler:
    """Writes typed rows through a target with the insert, upsert or skip strategy."""

    def __init__(
        self,
        session: Session,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_chunk_complete: Optional[Callable[[BatchResult], None]] = None,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.session = session
        self.chunk_size = chunk_size
        self.on_chunk_complete = on_chunk_complete

    def reconcile(
        self,
        target: ReconcileTarget,
        rows: Sequence[Any],
        strategy: ImportStrategy,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> BatchResult:
        """
        Reconcile rows in fixed-size chunks.

        Args:
            target: Entity target providing lookups and writes
            rows: Typed rows, in input order
            strategy: insert, upsert or skip
            should_continue: Consulted before each chunk; returning False
                stops the run and marks the result cancelled

        Returns:
            BatchResult with counters and per-row errors (1-based row numbers)
        """
        result = BatchResult(entity=target.entity)

        for start in range(0, len(rows), self.chunk_size):
            if should_continue is not None and not should_continue():
                result.cancelled = True
                logger.info(
                    f"Reconciliation of {target.entity} stopped before row {start + 1}",
                    extra={"entity": target.entity, "processed": result.total},
                )
                break

            chunk = rows[start:start + self.chunk_size]
            for offset, row in enumerate(chunk):
                self._process_row(target, row, start + offset + 1, strategy, result)

            self.session.flush()
            if self.on_chunk_complete is not None:
                self.on_chunk_complete(result)

        logger.info(
            f"Reconciled {result.total} {target.entity} rows: "
            f"{result.inserted} inserted, {result.updated} updated, "
            f"{result.skipped} skipped, {result.errored} errors",
            extra={"entity": target.entity, **result.counters()},
        )
        return result

    def _process_row(
        self,
        target: ReconcileTarget,
        row: Any,
        row_number: int,
        strategy: ImportStrategy,
        result: BatchResult,
    ) -> None:
        identifier: Optional[str] = None
        try:
            identifier = target.natural_key(row)
            with self.session.begin_nested():
                outcome = self._apply(target, row, strategy)
                self.session.flush()
        except IntegrityError as e:
            result.record_error(row_number, f"Constraint violation: {e.orig}", identifier)
            return
        except APIError as e:
            result.record_error(row_number, e.message, identifier)
            return
        except (ValueError, SQLAlchemyError) as e:
            logger.warning(
                f"Row {row_number} of {target.entity} failed: {e}",
                extra={"entity": target.entity, "identifier": identifier},
            )
            result.record_error(row_number, str(e), identifier)
            return

        result.record(outcome)

    def _apply(self, target: ReconcileTarget, row: Any, strategy: ImportStrategy) -> str:
        if strategy == ImportStrategy.INSERT:
            target.create(self.session, row)
            return "inserted"

        existing = target.find_existing(self.session, row)
        if existing is None:
            target.create(self.session, row)
            return "inserted"

        if strategy == ImportStrategy.SKIP:
            return "skipped"

        target.update(self.session, existing, row)
        return "updated"
