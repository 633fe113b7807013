"""
Unit Of Work Tests
Testing: MongoDB session/transaction lifecycle and driver error mapping
"""
import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from reconciliation import PersistenceError
from reconciliation.unit_of_work import MongoUnitOfWork, mongo_unit_of_work_factory

pytestmark = pytest.mark.anyio


class FakeSession:
    def __init__(self, fail_commit=False):
        self.fail_commit = fail_commit
        self.in_transaction = False
        self.events = []

    def start_transaction(self):
        self.in_transaction = True
        self.events.append("start")

    async def commit_transaction(self):
        if self.fail_commit:
            raise OperationFailure("WriteConflict")
        self.in_transaction = False
        self.events.append("commit")

    async def abort_transaction(self):
        self.in_transaction = False
        self.events.append("abort")

    async def end_session(self):
        self.events.append("end")


class FakeClient:
    def __init__(self, session=None, unreachable=False):
        self.session = session or FakeSession()
        self.unreachable = unreachable

    async def start_session(self):
        if self.unreachable:
            raise ServerSelectionTimeoutError("no replica set members")
        return self.session


class FakeDatabase:
    """Hands out a placeholder collection for any name"""

    def __getitem__(self, name):
        return object()


@pytest.fixture
def database():
    return FakeDatabase()


class TestMongoUnitOfWork:

    async def test_commit(self, database):
        client = FakeClient()
        async with MongoUnitOfWork(client, database) as uow:
            assert uow.bills.session is client.session
            await uow.commit()
        assert client.session.events == ["start", "commit", "end"]

    async def test_leaving_without_commit_aborts(self, database):
        client = FakeClient()
        async with MongoUnitOfWork(client, database):
            pass
        assert client.session.events == ["start", "abort", "end"]

    async def test_driver_error_inside_block(self, database):
        client = FakeClient()
        with pytest.raises(PersistenceError):
            async with MongoUnitOfWork(client, database):
                raise OperationFailure("duplicate key")
        assert client.session.events == ["start", "abort", "end"]

    async def test_failed_commit(self, database):
        client = FakeClient(session=FakeSession(fail_commit=True))
        with pytest.raises(PersistenceError):
            async with MongoUnitOfWork(client, database) as uow:
                await uow.commit()
        assert client.session.events == ["start", "abort", "end"]

    async def test_unreachable_server(self, database):
        factory = mongo_unit_of_work_factory(FakeClient(unreachable=True), database)
        with pytest.raises(PersistenceError):
            async with factory():
                pass

    async def test_domain_errors_pass_through(self, database):
        client = FakeClient()
        with pytest.raises(KeyError):
            async with MongoUnitOfWork(client, database):
                raise KeyError("jobs")
        assert "abort" in client.session.events

    async def test_session_closed_when_begin_fails(self, database):
        class BrokenSession(FakeSession):
            def start_transaction(self):
                raise RuntimeError("transactions unsupported")

        client = FakeClient(session=BrokenSession())
        with pytest.raises(RuntimeError):
            async with MongoUnitOfWork(client, database):
                pass
        assert client.session.events == ["end"]
