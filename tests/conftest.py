"""Pytest configuration and fixtures for crossstore tests."""

from unittest.mock import patch

import pytest
from dotenv import load_dotenv

from crossstore.dbs.cassandra import CassandraOperations
from crossstore.dbs.elasticsearch import SearchOperations
from crossstore.normalizer import ResultNormalizer
from crossstore.schema import KeySchema
from mock.mock_backend import InMemoryCassandraSession, InMemoryElasticsearch, RecordingBatch, StaticProvider

# Load environment variables
load_dotenv()

KEYSPACE = "app"


@pytest.fixture
def session():
    """In-memory Cassandra session; `enrolments` is keyed by (user_id, course_id)."""
    return InMemoryCassandraSession(key_columns={"enrolments": ["user_id", "course_id"]})


@pytest.fixture
def cassandra_provider(session):
    return StaticProvider(session)


@pytest.fixture
def records(cassandra_provider):
    """CassandraOperations over the in-memory session, with batches recorded."""
    ops = CassandraOperations(
        cassandra_provider,
        normalizer=ResultNormalizer({}),
        key_schemas={"enrolments": KeySchema(partition_keys=("user_id",), clustering_keys=("course_id",))},
    )
    with patch("crossstore.dbs.cassandra.BatchStatement", RecordingBatch):
        yield ops
    ops.close()


@pytest.fixture
def seeded_users(records):
    """Five users, three of them active."""
    users = [
        {"id": "u1", "name": "Asha", "status": "active", "age": 31},
        {"id": "u2", "name": "Bram", "status": "inactive", "age": 45},
        {"id": "u3", "name": "Chen", "status": "active", "age": 17},
        {"id": "u4", "name": "Dara", "status": "suspended", "age": 64},
        {"id": "u5", "name": "Eli", "status": "active", "age": 65},
    ]
    for user in users:
        records.insert_record(KEYSPACE, "users", user)
    return users


@pytest.fixture
def es_client():
    return InMemoryElasticsearch()


@pytest.fixture
def search_provider(es_client):
    return StaticProvider(es_client)


@pytest.fixture
def search(search_provider):
    ops = SearchOperations(search_provider, normalizer=ResultNormalizer({}), timeout=5.0)
    yield ops
    ops.close()


@pytest.fixture
def people(search):
    """Indexed people documents with nested certifications."""
    docs = {
        "p1": {"name": "Ana", "age": 17, "status": "Active", "certs": [{"level": "gold"}]},
        "p2": {"name": "Ben", "age": 18, "status": "active", "certs": [{"level": "silver"}]},
        "p3": {"name": "Cleo", "age": 64, "status": "ACTIVE", "level": "gold", "certs": [{"level": "silver"}]},
        "p4": {"name": "Dev", "age": 65, "status": "retired", "certs": [{"level": "gold"}, {"level": "bronze"}]},
    }
    for ident, doc in docs.items():
        search.save("people", ident, doc)
    return docs
