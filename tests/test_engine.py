"""Tests for DataAccessEngine wiring."""

from crossstore import DataAccessEngine
from crossstore.dbs.cassandra import CassandraOperations
from crossstore.dbs.elasticsearch import SearchOperations
from crossstore.schema import KeySchema
from crossstore.sessions import CassandraSessionProvider, ElasticsearchClientProvider
from crossstore.settings import CrossStoreSettings
from mock.mock_backend import InMemoryCassandraSession, InMemoryElasticsearch, StaticProvider


class TestDataAccessEngine:
    def test_default_providers_are_lazy(self):
        engine = DataAccessEngine(config=CrossStoreSettings())
        assert isinstance(engine.cassandra_provider, CassandraSessionProvider)
        assert isinstance(engine.search_provider, ElasticsearchClientProvider)
        assert engine.cassandra_provider.namespaces == []
        assert engine.search_provider.namespaces == []
        engine.close()

    def test_facades_share_configuration(self):
        config = CrossStoreSettings(
            COLUMN_MAPPING={"usr_nm": "name"}, SEARCH_TIMEOUT_SECONDS=2.5, SEARCH_POOL_SIZE=3, ASYNC_POOL_SIZE=1
        )
        engine = DataAccessEngine(
            config=config,
            cassandra_provider=StaticProvider(InMemoryCassandraSession()),
            search_provider=StaticProvider(InMemoryElasticsearch()),
            key_schemas={"enrolments": {"partition_keys": ["user_id"], "clustering_keys": ["course_id"]}},
        )
        assert isinstance(engine.records, CassandraOperations)
        assert isinstance(engine.search, SearchOperations)
        assert engine.search.timeout == 2.5
        assert engine.records.normalizer is engine.search.normalizer
        assert engine.records.normalizer.column_mapping == {"usr_nm": "name"}
        assert engine.records.key_schema("enrolments") == KeySchema(
            partition_keys=("user_id",), clustering_keys=("course_id",)
        )
        engine.close()

    def test_column_mapping_applies_to_reads(self):
        session = InMemoryCassandraSession()
        engine = DataAccessEngine(
            config=CrossStoreSettings(COLUMN_MAPPING={"usr_nm": "name"}),
            cassandra_provider=StaticProvider(session),
            search_provider=StaticProvider(InMemoryElasticsearch()),
        )
        engine.records.insert_record("app", "users", {"id": "u1", "usr_nm": "Asha"})
        assert engine.records.get_record_by_id("app", "users", "u1").records == [{"id": "u1", "name": "Asha"}]
        engine.close()

    def test_both_stores_through_one_engine(self):
        es = InMemoryElasticsearch()
        with DataAccessEngine(
            config=CrossStoreSettings(),
            cassandra_provider=StaticProvider(InMemoryCassandraSession()),
            search_provider=StaticProvider(es),
        ) as engine:
            engine.records.insert_record("app", "users", {"id": "u1", "status": "active"})
            engine.search.save("people", "u1", {"status": "active"})
            assert engine.records.get_records("app", "users", {"status": "active"}).count == 1
            assert engine.search.search({"filters": {"status": "active"}}, "people").count == 1

    def test_close_releases_providers(self):
        cassandra = StaticProvider(InMemoryCassandraSession())
        search = StaticProvider(InMemoryElasticsearch())
        with DataAccessEngine(config=CrossStoreSettings(), cassandra_provider=cassandra, search_provider=search):
            pass
        assert cassandra.shutdown_calls == 1
        assert search.shutdown_calls == 1
