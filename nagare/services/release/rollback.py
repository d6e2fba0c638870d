from __future__ import annotations

from dataclasses import dataclass

from nagare.core.result import Err
from nagare.services.release.compensation import (
    CompensationContext,
    ManualFollowUp,
    NoCompensation,
    compensate,
)
from nagare.services.release.ledger import OperationLedger, OperationState, TrackedOperation

__all__ = ["RollbackCoordinator", "RollbackResult"]


@dataclass(frozen=True, slots=True)
class RollbackResult:
    """What an automatic rollback undid and what is left for a human.

    ``success`` is False as soon as one compensation failed. Operations in
    ``manual`` do not affect it.
    """

    success: bool
    rolled_back: tuple[TrackedOperation, ...] = ()
    failed: tuple[tuple[TrackedOperation, str], ...] = ()
    manual: tuple[TrackedOperation, ...] = ()

    @property
    def instructions(self) -> list[str]:
        return [
            op.compensation.instructions
            for op in self.manual
            if isinstance(op.compensation, ManualFollowUp)
        ]


class RollbackCoordinator:
    """Undo completed ledger operations, newest first."""

    def __init__(self, ledger: OperationLedger, ctx: CompensationContext) -> None:
        self.ledger = ledger
        self.ctx = ctx

    def perform_rollback(self) -> RollbackResult:
        """Compensate every completed operation that has not been compensated yet.

        A failing compensation is recorded and the remaining operations are
        still processed. Each compensation runs at most once, so calling this
        again only touches operations completed since the last call.
        """
        pending = [
            op
            for op in reversed(self.ledger.operations)
            if op.state is OperationState.COMPLETED and not op.compensation_attempted
        ]
        logger = self.ctx.logger
        logger.audit("rollback_started", {"operations": len(pending)})

        rolled_back: list[TrackedOperation] = []
        failed: list[tuple[TrackedOperation, str]] = []
        manual: list[TrackedOperation] = []

        for op in pending:
            compensation = op.compensation
            if compensation is None or isinstance(compensation, NoCompensation):
                continue
            op.compensation_attempted = True

            if isinstance(compensation, ManualFollowUp):
                logger.warn(f"Manual follow-up needed for {op.description}: {compensation.instructions}")
                manual.append(op)
                continue

            logger.debug(f"Compensating #{op.id} {op.type.value}: {op.description}")
            try:
                outcome = compensate(compensation, self.ctx)
            except Exception as e:  # noqa: BLE001
                failed.append((op, f"{type(e).__name__}: {e}"))
                logger.error(f"Rollback of {op.description} raised: {e}")
                continue

            if isinstance(outcome, Err):
                failed.append((op, outcome.error))
                logger.error(f"Rollback of {op.description} failed: {outcome.error}")
                continue

            self.ledger.mark_rolled_back(op.id)
            rolled_back.append(op)
            logger.info(f"Rolled back {op.description} ({outcome.value})")

        result = RollbackResult(
            success=not failed,
            rolled_back=tuple(rolled_back),
            failed=tuple(failed),
            manual=tuple(manual),
        )
        if result.success:
            logger.audit(
                "rollback_completed",
                {
                    "rolled_back": [op.id for op in rolled_back],
                    "manual": [op.id for op in manual],
                },
            )
        else:
            logger.audit(
                "rollback_failed",
                {
                    "rolled_back": [op.id for op in rolled_back],
                    "failed": [{"id": op.id, "error": err} for op, err in failed],
                    "manual": [op.id for op in manual],
                },
            )
        return result
