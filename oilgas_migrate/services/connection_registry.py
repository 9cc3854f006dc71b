"""Per-tenant SQLAlchemy engines for the direct exporter."""

import logging
import threading
from typing import Dict, Optional, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url

from ..models.config import DatabaseConfig
from .rule_repository import RuleRepository

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Lazily creates one pooled engine per tenant database.

    Created once per process and passed to whatever needs the target
    store; engines are keyed by database name and shared between workers.
    """

    def __init__(self, repository: RuleRepository, database_config: Optional[DatabaseConfig] = None):
        """
        Initialize the registry.

        Args:
            repository: Resolves tenant database names
            database_config: Connection descriptor (defaults to the repository's)
        """
        self.repository = repository
        self.database_config = database_config or repository.config.database_config
        self._engines: Dict[str, Engine] = {}
        self._lock = threading.Lock()

    def url_for(self, database_name: str) -> Union[URL, str]:
        """Connection URL for a database; an explicit url may use a {database} placeholder."""
        config = self.database_config
        if config.url:
            return config.url.replace("{database}", database_name)
        query = {"sslmode": config.ssl_mode} if config.ssl_mode else {}
        return URL.create(
            "postgresql+psycopg2",
            username=config.username or None,
            password=config.password or None,
            host=config.host,
            port=config.port,
            database=database_name,
            query=query,
        )

    def _pool_options(self, url: Union[URL, str]) -> Dict[str, int]:
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
            return {}
        config = self.database_config
        pool_size = max(1, config.idle_conns)
        return {
            "pool_size": pool_size,
            "max_overflow": max(0, config.max_conns - pool_size),
            "pool_recycle": config.conn_max_lifetime,
        }

    def engine_for(self, tenant: Optional[str] = None) -> Engine:
        """
        Get (or create) the engine for a tenant.

        Args:
            tenant: Tenant id; the default tenant when omitted

        Returns:
            Engine bound to the tenant's database
        """
        tenant = tenant or self.repository.config.tenant_id or self.repository.config.tenant_settings.default_tenant
        database_name = self.database_config.database_name or self.repository.get_target_database_name(tenant)

        with self._lock:
            engine = self._engines.get(database_name)
            if engine is None:
                url = self.url_for(database_name)
                engine = create_engine(url, pool_pre_ping=True, **self._pool_options(url))
                self._engines[database_name] = engine
                logger.info(f"Created engine for tenant {tenant} ({engine.url.render_as_string(hide_password=True)})")
            return engine

    @property
    def engines(self) -> Dict[str, Engine]:
        with self._lock:
            return dict(self._engines)

    def dispose_all(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            for name, engine in self._engines.items():
                engine.dispose()
                logger.debug(f"Disposed engine for {name}")
            self._engines.clear()
