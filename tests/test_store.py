from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dataflow.persistence.store import CandleStore

AT = datetime(2024, 3, 15, 13, 47, 23, 999999, tzinfo=timezone.utc)


class FakeConnection:
    def __init__(self):
        self.executed = []

    async def execute(self, query, *args):
        self.executed.append((query, args))


class FakePool:
    def __init__(self):
        self.conn = FakeConnection()

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def connected_store():
    store = CandleStore("postgresql://localhost/test")
    store._pool = FakePool()
    return store


async def test_heartbeat_epoch_matches_record_epochs():
    store = connected_store()

    await store.update_heartbeat("ftxus", AT)

    _, args = store._pool.conn.executed[0]
    assert args == ("ftxus", 1710510444000, AT)


async def test_exchange_seed_epoch_matches_record_epochs():
    store = connected_store()

    await store.ensure_exchange("ftxus", AT)

    _, args = store._pool.conn.executed[0]
    assert args[1] == 1710510444000
