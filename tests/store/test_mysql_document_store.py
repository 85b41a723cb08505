import json
import threading

import mysql.connector
import pytest

from cadet_roster.core.exceptions import RemoteReadError, RemoteWriteError, ValidationError
from cadet_roster.database.mysql_base import load_body
from cadet_roster.store.mysql_document_store import MySQLDocumentStore, _where
from cadet_roster.store.repository import FieldFilter, eq, is_in


class FakeCursor:
    def __init__(self, conn):
        self._conn = conn
        self.closed = False

    def execute(self, sql, params=()):
        if self._conn.factory.fail_with is not None:
            raise self._conn.factory.fail_with
        self._conn.factory.executed.append((" ".join(sql.split()), tuple(params)))

    def fetchone(self):
        return self._conn.factory.one.pop(0) if self._conn.factory.one else None

    def fetchall(self):
        return self._conn.factory.rows

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, factory):
        self.factory = factory
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self, dictionary=True):
        return FakeCursor(self)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


class FakeConnectionFactory:
    """Stands in for DatabaseConnection; records every statement."""

    def __init__(self):
        self.executed = []
        self.connections = []
        self.rows = []
        self.one = []
        self.fail_with = None

    def connect(self):
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn


@pytest.fixture
def factory():
    return FakeConnectionFactory()


@pytest.fixture
def mysql_store(factory):
    s = MySQLDocumentStore(factory, max_batch_size=2, poll_seconds=0.01)
    yield s
    s.close()


def test_where_clause_for_eq_and_in():
    where, params = _where("attendance", [eq("weekStartDate", "2026-01-19"), is_in("cadetId", ["42", "7"])])

    assert where.count("JSON_EXTRACT(body, %s) = CAST(%s AS JSON)") == 3
    assert params == ["attendance", "$.weekStartDate", '"2026-01-19"', "$.cadetId", '"42"', "$.cadetId", '"7"']


def test_where_rejects_unsafe_field_names():
    with pytest.raises(ValidationError):
        _where("cadets", [FieldFilter("company') OR 1=1 --", "==", "x")])


def test_query_decodes_rows(mysql_store, factory):
    factory.rows = [{"doc_key": "42", "body": '{"company": "Alpha"}'}]

    docs = mysql_store.query("cadets", [eq("company", "Alpha")])

    assert [(d.key, d.data) for d in docs] == [("42", {"company": "Alpha"})]
    assert factory.connections[0].committed and factory.connections[0].closed


def test_query_failure_is_a_read_error_and_rolls_back(mysql_store, factory):
    factory.fail_with = mysql.connector.Error("gone away")

    with pytest.raises(RemoteReadError):
        mysql_store.query("cadets")

    assert factory.connections[0].rolled_back
    assert factory.connections[0].closed


def test_get_missing_document(mysql_store):
    assert mysql_store.get("cadets", "404") is None


def test_merge_write_keeps_existing_fields(mysql_store, factory):
    factory.one = [{"body": json.dumps({"ptMonday": "present", "labThursday": "excused"})}]

    mysql_store.upsert_merge("attendance", "2026-01-19_42", {"ptTuesday": "excused"})

    select_sql, _ = factory.executed[0]
    insert_sql, params = factory.executed[1]
    assert select_sql.endswith("FOR UPDATE")
    assert insert_sql.startswith("INSERT INTO documents")
    assert json.loads(params[2]) == {"ptMonday": "present", "labThursday": "excused", "ptTuesday": "excused"}


def test_batch_runs_in_one_transaction(mysql_store, factory):
    mysql_store.batch_upsert_merge("cadets", [("1", {"company": "Alpha"}), ("2", {"company": "Bravo"})])

    assert len(factory.connections) == 1
    assert factory.connections[0].committed
    assert len(factory.executed) == 4


def test_batch_over_limit_never_connects(mysql_store, factory):
    with pytest.raises(RemoteWriteError):
        mysql_store.batch_upsert_merge("cadets", [(str(i), {}) for i in range(3)])

    assert factory.connections == []


def test_write_failure_is_a_write_error(mysql_store, factory):
    factory.fail_with = mysql.connector.Error("lock wait timeout")

    with pytest.raises(RemoteWriteError) as info:
        mysql_store.upsert_merge("cadets", "42", {"company": "Alpha"})

    assert info.value.operation == "upsert_merge"


def test_subscription_pushes_full_result(mysql_store, factory):
    factory.rows = [{"doc_key": "42", "body": {"company": "Alpha"}}]
    delivered = threading.Event()
    seen = []

    def on_change(docs):
        seen.append(docs)
        delivered.set()

    unsubscribe = mysql_store.subscribe("cadets", [], on_change)
    assert delivered.wait(2.0)
    unsubscribe()

    assert [d.key for d in seen[0]] == ["42"]


def test_subscription_error_goes_to_on_error(mysql_store, factory):
    factory.fail_with = mysql.connector.Error("server restarted")
    failed = threading.Event()
    errors = []

    def on_error(exc):
        errors.append(exc)
        failed.set()

    unsubscribe = mysql_store.subscribe("attendance", [], lambda docs: None, on_error)
    assert failed.wait(2.0)
    unsubscribe()

    assert isinstance(errors[0], RemoteReadError)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, {}),
        ({"a": 1}, {"a": 1}),
        (b'{"a": 1}', {"a": 1}),
        ('{"a": 1}', {"a": 1}),
    ],
)
def test_load_body_accepts_connector_json_shapes(raw, expected):
    assert load_body(raw) == expected
