"""
Tests for UserReconciler and the pure reconciliation decision.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from deal_digest.clients.postgres_client import PostgresClient
from deal_digest.errors import ReconcileFailedError, StoreQueryError
from deal_digest.models.user import UserSeed
from deal_digest.pipeline.reconciler import (
    ReconcileAction,
    ReconcileDecision,
    UserReconciler,
    decide,
)
from deal_digest.repository import StoreRepository

ALICE = {'id': 'A', 'name': 'Alice', 'email': 'old@x.com'}
BOB = {'id': 'B', 'name': 'Bob', 'email': 'new@x.com'}


@pytest.fixture
def reconciler(repository):
    return UserReconciler(repository)


class TestDecide:
    """The four-way decision table."""

    def test_no_match_creates(self):
        assert decide(None, None) == ReconcileDecision(ReconcileAction.CREATE)

    def test_name_match_only(self):
        assert decide(ALICE, None) == ReconcileDecision(ReconcileAction.UPDATE_BY_NAME, target_id='A')

    def test_both_match_same_row(self):
        assert decide(ALICE, ALICE) == ReconcileDecision(ReconcileAction.UPDATE_BY_NAME, target_id='A')

    def test_email_match_only(self):
        assert decide(None, BOB) == ReconcileDecision(ReconcileAction.UPDATE_BY_EMAIL, target_id='B')

    def test_conflict(self):
        assert decide(ALICE, BOB) == ReconcileDecision(
            ReconcileAction.CONFLICT_RESOLVE,
            target_id='A',
            conflicting_id='B',
        )


class TestReconcile:
    @pytest.mark.asyncio
    async def test_empty_roster_makes_no_store_calls(self, reconciler, repository):
        result = await reconciler.reconcile([])

        assert result.total_count == 0
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_creates_new_users(self, reconciler, repository, sample_seeds):
        result = await reconciler.reconcile(sample_seeds)

        assert result.all_succeeded
        assert [r.data['action'] for r in result.succeeded] == ['create', 'create']
        assert sorted(u['email'] for u in repository.users.values()) == [
            'alice@example.com',
            'bob@example.com',
        ]

    @pytest.mark.asyncio
    async def test_reseeding_updates_in_place(self, reconciler, repository, sample_seeds):
        await reconciler.reconcile(sample_seeds)
        result = await reconciler.reconcile(sample_seeds)

        assert [r.data['action'] for r in result.succeeded] == ['update_by_name', 'update_by_name']
        assert len(repository.users) == 2

    @pytest.mark.asyncio
    async def test_update_by_name_changes_email_and_retailers(self, reconciler, repository):
        user_id = repository.add_user('Alice', 'old@x.com', ['Acme'])

        await reconciler.reconcile([
            UserSeed(name='Alice', email='alice@new.com', preferred_retailers=['FreshMart'])
        ])

        assert repository.users[user_id]['email'] == 'alice@new.com'
        assert repository.users[user_id]['preferred_retailers'] == ['FreshMart']

    @pytest.mark.asyncio
    async def test_update_by_email_renames(self, reconciler, repository):
        user_id = repository.add_user('Al', 'alice@x.com', [])

        result = await reconciler.reconcile([
            UserSeed(name='Alice', email='alice@x.com', preferred_retailers=['Acme'])
        ])

        assert result.succeeded[0].data == {'action': 'update_by_email', 'user_id': user_id}
        assert repository.users[user_id]['name'] == 'Alice'
        assert repository.users[user_id]['preferred_retailers'] == ['Acme']

    @pytest.mark.asyncio
    async def test_conflict_deletes_email_holder(self, reconciler, repository):
        alice_id = repository.add_user('Alice', 'old@x.com', [])
        bob_id = repository.add_user('Bob', 'new@x.com', [])

        result = await reconciler.reconcile([UserSeed(name='Alice', email='new@x.com')])

        assert result.succeeded[0].data['action'] == 'conflict_resolve'
        assert bob_id not in repository.users
        assert repository.users[alice_id]['email'] == 'new@x.com'
        assert 'replace_user' in repository.calls
        assert 'delete_user' not in repository.calls
        assert 'update_user' not in repository.calls

    @pytest.mark.asyncio
    async def test_failure_is_isolated_per_user(self, reconciler, repository, sample_seeds):
        calls = {'count': 0}
        original_insert = repository.insert_user

        async def flaky_insert(name, email, preferred_retailers):
            calls['count'] += 1
            if calls['count'] == 1:
                raise StoreQueryError('deadlock detected')
            return await original_insert(name, email, preferred_retailers)

        repository.insert_user = flaky_insert

        result = await reconciler.reconcile(sample_seeds)

        assert result.partial_success
        assert result.failed[0].item_id == 'Alice'
        assert isinstance(result.failed[0].error, ReconcileFailedError)
        assert 'deadlock detected' in result.failed[0].error.message
        assert [u['name'] for u in repository.users.values()] == ['Bob']

    @pytest.mark.asyncio
    async def test_lookup_failure_is_isolated(self, reconciler, repository, sample_seeds):
        repository.failures['find_user_by_name'] = StoreQueryError('timeout')

        result = await reconciler.reconcile(sample_seeds)

        assert result.failure_count == 2
        assert result.success_count == 0

    @pytest.mark.asyncio
    async def test_refused_connection_is_isolated(self, sample_seeds):
        conn = AsyncMock()
        conn.execute = AsyncMock(side_effect=ConnectionRefusedError(111, 'Connect call failed'))
        ctx = AsyncMock()
        ctx.__aenter__ = AsyncMock(return_value=conn)
        ctx.__aexit__ = AsyncMock(return_value=False)
        engine = MagicMock()
        engine.connect = MagicMock(return_value=ctx)
        postgres = PostgresClient(database_url='postgresql://localhost/deals')
        postgres._engine = engine

        result = await UserReconciler(StoreRepository(postgres)).reconcile(sample_seeds)

        assert result.failure_count == 2
        assert all(isinstance(item.error, ReconcileFailedError) for item in result.failed)
