from oilgas_migrate.models.config import DatabaseConfig
from oilgas_migrate.services.connection_registry import ConnectionRegistry


def test_postgres_url_from_descriptor(repository):
    config = DatabaseConfig(host="db.internal", port=6543, username="etl", password="secret", ssl_mode="require")
    url = ConnectionRegistry(repository, config).url_for("oilgas_location_longbeach")

    assert url.drivername == "postgresql+psycopg2"
    assert url.host == "db.internal"
    assert url.port == 6543
    assert url.database == "oilgas_location_longbeach"
    assert url.query["sslmode"] == "require"


def test_engines_are_shared_per_tenant_database(repository, tmp_path):
    repository.config.database_config.url = f"sqlite:///{tmp_path}/{{database}}.db"
    registry = ConnectionRegistry(repository)

    denver = registry.engine_for("location_denver")
    assert registry.engine_for("location_denver") is denver
    assert denver.url.database.endswith("oilgas_location_denver.db")
    assert registry.engine_for("location_lasvegas") is not denver
    assert len(registry.engines) == 2

    # pool bounds come from the descriptor
    assert denver.pool.size() == repository.config.database_config.idle_conns

    registry.dispose_all()
    assert registry.engines == {}


def test_in_memory_sqlite_skips_pool_bounds(repository):
    repository.config.database_config.url = "sqlite://"
    engine = ConnectionRegistry(repository).engine_for()
    assert engine.dialect.name == "sqlite"
    engine.dispose()
