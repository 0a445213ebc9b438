"""
User roster reconciliation.

Each seed is located by name and by email; the pair of lookups maps to
exactly one of four actions:

| by name | by email        | action                                    |
|---------|-----------------|-------------------------------------------|
| none    | none            | CREATE                                    |
| A       | none, or A      | UPDATE_BY_NAME: set email + retailers on A |
| A       | B (B != A)      | CONFLICT_RESOLVE: delete B, then update A |
| none    | B               | UPDATE_BY_EMAIL: set name + retailers on B |

The seed's name is the stronger identity signal: a row that merely shares
the new email is treated as stale and removed, not merged.

Failures are isolated per seed; one bad record never blocks the rest of the
roster.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from ..errors import DealDigestError, PartialSuccessResult, ReconcileFailedError
from ..models.user import UserSeed
from ..repository import StoreRepository

logger = structlog.get_logger(__name__)


class ReconcileAction(str, Enum):
    """The four ways a seed can land in the users table."""

    CREATE = 'create'
    UPDATE_BY_NAME = 'update_by_name'
    UPDATE_BY_EMAIL = 'update_by_email'
    CONFLICT_RESOLVE = 'conflict_resolve'


@dataclass(frozen=True)
class ReconcileDecision:
    """
    Tagged reconciliation decision.

    target_id is the row to update (None for CREATE); conflicting_id is the
    row to delete (only set for CONFLICT_RESOLVE).
    """

    action: ReconcileAction
    target_id: str | None = None
    conflicting_id: str | None = None


def decide(
    existing_by_name: dict[str, Any] | None,
    existing_by_email: dict[str, Any] | None,
) -> ReconcileDecision:
    """Pick the action for one seed from its two lookups."""
    if existing_by_name is None and existing_by_email is None:
        return ReconcileDecision(ReconcileAction.CREATE)

    if existing_by_name is None:
        return ReconcileDecision(
            ReconcileAction.UPDATE_BY_EMAIL,
            target_id=existing_by_email['id'],
        )

    if existing_by_email is not None and existing_by_email['id'] != existing_by_name['id']:
        return ReconcileDecision(
            ReconcileAction.CONFLICT_RESOLVE,
            target_id=existing_by_name['id'],
            conflicting_id=existing_by_email['id'],
        )

    return ReconcileDecision(ReconcileAction.UPDATE_BY_NAME, target_id=existing_by_name['id'])


class UserReconciler:
    """Merges a roster of seeds into the users table, one seed at a time."""

    def __init__(self, repository: StoreRepository):
        self.repository = repository

    async def reconcile(self, users: list[UserSeed]) -> PartialSuccessResult:
        """
        Reconcile seeds in input order.

        Returns:
            PartialSuccessResult keyed by seed name; data carries the action taken
        """
        result = PartialSuccessResult()
        if not users:
            return result

        logger.info('user_reconciler.batch_started', user_count=len(users))
        for seed in users:
            try:
                decision, user_id = await self.reconcile_one(seed)
            except DealDigestError as e:
                error = ReconcileFailedError(
                    f'Failed to reconcile user {seed.name}: {e.message}',
                    context={'name': seed.name, 'email': seed.email},
                )
                logger.error(
                    'user_reconciler.failed',
                    name=seed.name,
                    email=seed.email,
                    error=e.message,
                    error_type=type(e).__name__,
                )
                result.add_failure(error, item_id=seed.name)
                continue

            result.add_success(
                item_id=seed.name,
                data={'action': decision.action.value, 'user_id': user_id},
            )

        logger.info(
            'user_reconciler.batch_complete',
            succeeded=result.success_count,
            failed=result.failure_count,
        )
        return result

    async def reconcile_one(self, seed: UserSeed) -> tuple[ReconcileDecision, str | None]:
        """
        Look up, decide and apply for a single seed.

        Returns:
            The decision taken and the id of the row now holding the seed
        """
        by_name = await self.repository.find_user_by_name(seed.name)
        by_email = await self.repository.find_user_by_email(seed.email)
        decision = decide(by_name, by_email)

        if decision.action == ReconcileAction.CREATE:
            user_id = await self.repository.insert_user(
                seed.name, seed.email, seed.preferred_retailers
            )
            logger.info('user_reconciler.created', name=seed.name, email=seed.email)
            return decision, user_id

        if decision.action == ReconcileAction.UPDATE_BY_EMAIL:
            await self.repository.update_user(
                decision.target_id,
                {'name': seed.name, 'preferred_retailers': seed.preferred_retailers},
            )
            logger.info(
                'user_reconciler.renamed',
                previous_name=by_email['name'],
                name=seed.name,
                email=seed.email,
            )
            return decision, decision.target_id

        updates = {'email': seed.email, 'preferred_retailers': seed.preferred_retailers}
        if decision.action == ReconcileAction.CONFLICT_RESOLVE:
            await self.repository.replace_user(decision.conflicting_id, decision.target_id, updates)
            logger.info(
                'user_reconciler.conflict_removed',
                removed_name=by_email['name'],
                email=seed.email,
            )
        else:
            await self.repository.update_user(decision.target_id, updates)
        logger.info(
            'user_reconciler.updated',
            name=seed.name,
            email=seed.email,
            email_changed=by_name['email'] != seed.email,
        )
        return decision, decision.target_id
