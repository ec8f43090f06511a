import pytest

from staxgraph.encoding import (
    ValueType,
    fvo_key,
    hash_fnv1a_32,
    ofv_relationship_key,
)
from staxgraph.reader import GraphReader
from staxgraph.store import FVO_COLLECTION, OFV_COLLECTION, Database
from staxgraph.transaction import (
    GraphTransaction,
    ObjectProperty,
    PropertyType,
    TransactionFinishedError,
)

KNOWS = hash_fnv1a_32("knows")
NAME = hash_fnv1a_32("name")
AGE = hash_fnv1a_32("age")


def reader_for(db):
    return GraphReader(db, db.begin_context())


@pytest.fixture
def db():
    return Database()


def test_relationship_visible_after_commit(db):
    txn = GraphTransaction(db)
    txn.insert_fact(1, KNOWS, 2)
    txn.insert_fact(1, KNOWS, 3)
    assert reader_for(db).get_outgoing_relationships(1, KNOWS) == []
    txn.commit()
    reader = reader_for(db)
    assert reader.get_outgoing_relationships(1, KNOWS) == [2, 3]
    assert reader.get_incoming_relationships(2, KNOWS) == [1]
    assert reader.has_relationship(1, KNOWS, 3)
    assert txn.seen_relationship_field_ids == {KNOWS}


def test_stored_relationship_bytes(db):
    with GraphTransaction(db) as txn:
        txn.insert_fact(5, KNOWS, 6)
    ctx = db.begin_context()
    ofv_value = db.collection(OFV_COLLECTION).get(ctx, ofv_relationship_key(5, KNOWS, 6))
    assert ofv_value == bytes([ValueType.RELATIONSHIP])
    assert db.collection(FVO_COLLECTION).get(ctx, fvo_key(KNOWS, 6, 5)) == b"1"


def test_string_property_round_trip(db):
    with GraphTransaction(db) as txn:
        txn.insert_fact_string(7, NAME, "name", "alice")
        txn.insert_fact_string(8, NAME, "name", "alice")
    reader = reader_for(db)
    assert reader.get_property_string(7, NAME) == "alice"
    assert reader.get_objects_by_property(NAME, "alice") == [7, 8]


def test_numeric_property_round_trip(db):
    with GraphTransaction(db) as txn:
        txn.insert_fact_numeric(1, AGE, "age", 30)
        txn.insert_fact_numeric(2, AGE, "age", 40)
        txn.insert_fact_numeric(3, AGE, "age", 50)
    reader = reader_for(db)
    assert reader.get_property_numeric(2, AGE) == 40
    assert reader.get_objects_by_property_range(AGE, 35, 50) == [2, 3]


def test_abort_discards_writes(db):
    txn = GraphTransaction(db)
    txn.insert_fact(1, KNOWS, 2)
    txn.flush()
    txn.abort()
    assert reader_for(db).get_outgoing_relationships(1, KNOWS) == []
    assert txn.finished


def test_context_manager_aborts_on_error(db):
    with pytest.raises(KeyError):
        with GraphTransaction(db) as txn:
            txn.insert_fact(1, KNOWS, 2)
            raise KeyError("boom")
    assert reader_for(db).has_relationship(1, KNOWS, 2) is False


def test_writes_after_finish_raise(db):
    txn = GraphTransaction(db)
    txn.commit()
    with pytest.raises(TransactionFinishedError):
        txn.insert_fact(1, KNOWS, 2)
    with pytest.raises(TransactionFinishedError):
        txn.remove_fact_numeric(1, AGE, 3)
    with pytest.raises(TransactionFinishedError):
        txn.update_object(1, [])


def test_commit_twice_is_harmless(db):
    txn = GraphTransaction(db)
    txn.insert_fact(1, KNOWS, 2)
    txn.commit()
    txn.commit()
    txn.abort()
    assert reader_for(db).get_outgoing_relationships(1, KNOWS) == [2]


def test_remove_fact_and_string(db):
    with GraphTransaction(db) as txn:
        txn.insert_fact(1, KNOWS, 2)
        txn.insert_fact_string(1, NAME, "name", "bob")
    with GraphTransaction(db) as txn:
        txn.remove_fact(1, KNOWS, 2)
        txn.remove_fact_string(1, NAME, "bob")
    reader = reader_for(db)
    assert reader.get_outgoing_relationships(1, KNOWS) == []
    assert reader.get_property_string(1, NAME) is None
    assert reader.get_objects_by_property(NAME, "bob") == []


def test_insert_then_remove_in_same_transaction(db):
    with GraphTransaction(db) as txn:
        txn.insert_fact(1, KNOWS, 2)
        txn.remove_fact(1, KNOWS, 2)
    assert reader_for(db).has_relationship(1, KNOWS, 2) is False


def test_update_object_replaces_properties_keeps_relationships(db):
    with GraphTransaction(db) as txn:
        txn.insert_fact_string(1, NAME, "name", "old")
        txn.insert_fact_numeric(1, AGE, "age", 20)
        txn.insert_fact(1, KNOWS, 9)
    with GraphTransaction(db) as txn:
        txn.update_object(1, [ObjectProperty.string("name", "new")])
    reader = reader_for(db)
    assert reader.get_property_string(1, NAME) == "new"
    assert reader.get_property_numeric(1, AGE) is None
    assert reader.get_objects_by_property(NAME, "old") == []
    assert reader.get_objects_by_property_range(AGE, 0, 100) == []
    assert reader.get_outgoing_relationships(1, KNOWS) == [9]


def test_update_object_numeric_property(db):
    with GraphTransaction(db) as txn:
        txn.update_object(4, [ObjectProperty("age", PropertyType.NUMERIC, 12)])
    assert reader_for(db).get_property_numeric(4, AGE) == 12


def test_clear_object_facts(db):
    with GraphTransaction(db) as txn:
        txn.insert_fact_string(1, NAME, "name", "x")
        txn.insert_fact(1, KNOWS, 2)
        txn.insert_fact(3, KNOWS, 1)
        txn.insert_fact(3, KNOWS, 2)
    with GraphTransaction(db) as txn:
        txn.clear_object_facts(1)
    reader = reader_for(db)
    assert reader.get_property_string(1, NAME) is None
    assert reader.get_outgoing_relationships(1, KNOWS) == []
    assert reader.get_incoming_relationships(1, KNOWS) == []
    assert reader.get_outgoing_relationships(3, KNOWS) == [2]


def test_flush_threshold_writes_in_batches(db):
    txn = GraphTransaction(db, flush_threshold=2)
    for target in range(1, 6):
        txn.insert_fact(1, KNOWS, target)
    assert txn.pending_count <= 4
    own_view = db.collection(OFV_COLLECTION).get(txn.ctx, ofv_relationship_key(1, KNOWS, 1))
    assert own_view == bytes([ValueType.RELATIONSHIP])
    txn.commit()
    assert reader_for(db).get_outgoing_relationships(1, KNOWS) == [1, 2, 3, 4, 5]


def test_explicit_ids(db):
    txn = GraphTransaction(db, 0, read_snapshot_id=0, commit_id=99)
    assert txn.txn_id == 99
    assert txn.read_snapshot_id == 0
    with pytest.raises(ValueError):
        GraphTransaction(db, 0, read_snapshot_id=0)


def test_has_writes_flag(db):
    txn = GraphTransaction(db)
    assert txn.has_writes is False
    txn.insert_fact_numeric(1, AGE, "age", 1)
    assert txn.has_writes is True