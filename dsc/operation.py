"""
operation.py - Atomic, serialized execution of engine entry points

Every mutating entry point runs inside one Operation:

    with guard.operation("mint_dsc") as op:
        ...effects, checks, interactions...

Execution order:
1. Acquire the engine-wide lock (other threads wait)
2. Reject a nested call from the thread already inside an operation
3. Snapshot both ledgers
4. Run the body; successful external interactions register compensations
5. On success: run commit actions
6. On failure of the body or of a commit action: run compensations in
   reverse, restore the snapshot, re-raise
7. Release the lock, then publish events

Events are buffered and only leave the engine once the operation is final.
Queries take the same lock through guard.reading(), so another thread never
sees the ledgers between those steps.
"""

from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, List, Optional, Tuple

from .core import ReentrantCall, TransferFailed
from .ledgers import CollateralLedger, DebtLedger

logger = logging.getLogger(__name__)


class Operation:
    """
    State of one in-progress entry point call.

    Attributes:
        name: Entry point name (for logs and ReentrantCall)
        timestamp: Engine time at which the operation started
        events: Domain events emitted so far (published on success)
    """

    def __init__(
        self,
        name: str,
        timestamp: datetime,
        collateral: CollateralLedger,
        debt: DebtLedger,
    ):
        self.name = name
        self.timestamp = timestamp
        self.events: List[Any] = []
        self._collateral = collateral
        self._debt = debt
        self._collateral_snapshot = collateral.snapshot()
        self._debt_snapshot = debt.snapshot()
        self._compensations: List[Tuple[str, Callable[[], bool]]] = []
        self._on_commit: List[Callable[[], None]] = []

    def emit(self, event: Any) -> None:
        self.events.append(event)

    def compensate_with(self, description: str, action: Callable[[], bool]) -> None:
        """Register how to undo an external interaction that already succeeded."""
        self._compensations.append((description, action))

    def on_commit(self, action: Callable[[], None]) -> None:
        """Register an action that runs only once the operation succeeded."""
        self._on_commit.append(action)

    def rollback(self) -> None:
        """Undo external interactions (newest first) and restore both ledgers."""
        failed = []
        for description, action in reversed(self._compensations):
            if not action():
                failed.append(description)
        self._compensations.clear()
        self._collateral.restore(self._collateral_snapshot)
        self._debt.restore(self._debt_snapshot)
        logger.debug("Rolled back %s", self.name)
        if failed:
            logger.error("Compensation failed during %s rollback: %s", self.name, failed)
            raise TransferFailed(f"Could not undo {', '.join(failed)} while rolling back {self.name}")

    def commit(self) -> None:
        for action in self._on_commit:
            action()
        self._on_commit.clear()


class OperationGuard:
    """
    Engine-wide serialization and call-in-progress flag.

    One guard is shared by PositionEngine and LiquidationEngine so that no
    operation of either can interleave with another, and so that a call
    made from inside an operation (a collaborator callback, say) is
    rejected instead of observing half-applied ledgers.
    """

    def __init__(
        self,
        collateral: CollateralLedger,
        debt: DebtLedger,
        clock: Callable[[], datetime],
        publish: Optional[Callable[[Tuple[Any, ...]], None]] = None,
    ):
        self._lock = threading.RLock()
        self._active: Optional[str] = None
        self._collateral = collateral
        self._debt = debt
        self._clock = clock
        self._publish = publish

    @property
    def active(self) -> Optional[str]:
        """Name of the operation in progress, if any."""
        return self._active

    @contextmanager
    def reading(self) -> Iterator[None]:
        """
        Hold the engine-wide lock for a read-only query.

        Other threads wait for any operation in progress to finish. The
        thread running an operation (a collaborator callback, say) may
        still read.
        """
        with self._lock:
            yield

    @contextmanager
    def operation(self, name: str) -> Iterator[Operation]:
        """
        Run the body of ``name`` atomically.

        Raises:
            ReentrantCall: If called from inside another operation on this thread
        """
        self._lock.acquire()
        if self._active is not None:
            active = self._active
            self._lock.release()
            raise ReentrantCall(name, active)
        self._active = name
        try:
            op = Operation(name, self._clock(), self._collateral, self._debt)
            try:
                yield op
                op.commit()
            except BaseException:
                op.rollback()
                raise
        finally:
            self._active = None
            self._lock.release()

        logger.info("%s committed (%d events)", name, len(op.events))
        if self._publish is not None and op.events:
            self._publish(tuple(op.events))
