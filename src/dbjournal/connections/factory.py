"""
Build a database client and schema catalog from configuration.

The MSSQL implementation is imported on demand so that SQLite-only
installations never load the ODBC driver.
"""
from typing import Tuple

from dbjournal.core.configs import ConnectionConfig
from dbjournal.utility.exceptions import ConfigError

from .base import DatabaseClient, SchemaCatalog
from .constants import SUPPORTED_CONNECTION_TYPES
from .sqlite import SqliteCatalog, SqliteClient


def create_client(config: ConnectionConfig) -> Tuple[DatabaseClient, SchemaCatalog]:
    """
    Build an unconnected client and its catalog from configuration.

    Raises:
        ConfigError: If the connection type is not supported
    """
    if config.type == "sqlite":
        client = SqliteClient(config.path, options={"timeout": config.timeout})
        return client, SqliteCatalog(client)

    if config.type == "mssql":
        from .mssql import MssqlCatalog, MssqlClient

        client = MssqlClient(
            server=config.server,
            database=config.database,
            options={
                "driver": config.driver,
                "encrypt": config.encrypt,
                "trust_cert": config.trust_cert,
                "timeout": config.timeout,
                "port": config.port,
                "authentication": config.authentication,
                "username": config.username,
                "password": config.password,
            },
        )
        return client, MssqlCatalog(client)

    raise ConfigError(
        f"Unsupported connection type '{config.type}'. "
        f"Supported: {', '.join(SUPPORTED_CONNECTION_TYPES)}"
    )
