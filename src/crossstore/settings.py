"""Settings for CrossStore engine."""

from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class CrossStoreSettings(BaseSettings):
    """CrossStore configuration settings."""

    # Cassandra
    CASSANDRA_HOSTS: List[str] = ["127.0.0.1"]
    CASSANDRA_PORT: int = 9042
    CASSANDRA_USERNAME: Optional[str] = None
    CASSANDRA_PASSWORD: Optional[str] = None
    CASSANDRA_CONSISTENCY_LEVEL: str = "LOCAL_QUORUM"
    # Set to pin queries to one datacenter (multi-DC clusters)
    CASSANDRA_LOCAL_DC: Optional[str] = None

    # Elasticsearch
    ES_HOSTS: List[str] = ["http://localhost:9200"]
    ES_API_KEY: Optional[str] = None
    ES_USERNAME: Optional[str] = None
    ES_PASSWORD: Optional[str] = None

    # Search behaviour
    SEARCH_TIMEOUT_SECONDS: float = 5.0
    SEARCH_DEFAULT_LIMIT: int = 250
    SEARCH_MAX_LIMIT: int = 10000
    SEARCH_POOL_SIZE: int = 4
    RAW_FIELD_SUFFIX: str = ".raw"

    # Async reads
    ASYNC_POOL_SIZE: int = 2

    # Physical column name -> logical property name
    COLUMN_MAPPING: Dict[str, str] = {}

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = CrossStoreSettings()
