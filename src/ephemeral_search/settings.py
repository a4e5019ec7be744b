from functools import lru_cache
from typing import List, Optional

from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel


class ChunkingDefaults(BaseModel):
    """Split/chunk tunables for the session skillset."""
    page_length: int = 6000
    chunk_length: int = 2000
    chunk_overlap: int = 200
    language_code: str = "de"


class IndexWaitDefaults(BaseModel):
    """Bounded wait for the single-shot indexer run (seconds)."""
    timeout_s: float = 600.0
    poll_interval_s: float = 3.0


class Settings(BaseSettings):
    """Application settings loaded from environment/.env.

    Built once at startup via `get_settings()` and handed to
    `SessionServices`; nothing below reads the environment on import.
    """

    # Azure AI Search
    search_endpoint: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AZURE_SEARCH_ENDPOINT", "search_endpoint")
    )
    search_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AZURE_SEARCH_API_KEY", "search_api_key")
    )
    search_mgmt_api_version: str = Field(
        default="2024-07-01",
        validation_alias=AliasChoices("AZURE_SEARCH_MGMT_API_VERSION", "search_mgmt_api_version"),
    )
    search_query_api_version: str = Field(
        default="2024-07-01",
        validation_alias=AliasChoices("AZURE_SEARCH_QUERY_API_VERSION", "search_query_api_version"),
    )
    search_timeout_s: float = Field(
        default=30.0, validation_alias=AliasChoices("AZURE_SEARCH_TIMEOUT_S", "search_timeout_s")
    )

    # Blob storage
    storage_connection_string: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AZURE_STORAGE_CONNECTION_STRING", "storage_connection_string"),
    )
    blob_container: str = Field(
        default="chat-temp-docs", validation_alias=AliasChoices("BLOB_CONTAINER", "blob_container")
    )
    blob_prefix_root: str = Field(
        default="runs", validation_alias=AliasChoices("BLOB_PREFIX_ROOT", "blob_prefix_root")
    )

    # Azure OpenAI (server-side vectorization + chat)
    azure_openai_endpoint: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AZURE_OPENAI_ENDPOINT", "azure_openai_endpoint")
    )
    azure_openai_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AZURE_OPENAI_API_KEY", "azure_openai_api_key")
    )
    azure_openai_embed_deployment: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AZURE_OPENAI_EMBED_DEPLOYMENT", "azure_openai_embed_deployment"),
    )
    azure_openai_embed_model: str = Field(
        default="text-embedding-3-small",
        validation_alias=AliasChoices("AZURE_OPENAI_EMBED_MODEL_NAME", "azure_openai_embed_model"),
    )
    # None = native dimension of the embedding model
    embed_dimensions: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("AZURE_SEARCH_EMBED_DIM", "embed_dimensions")
    )
    azure_openai_chat_deployment: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AZURE_OPENAI_CHAT_DEPLOYMENT", "azure_openai_chat_deployment"),
    )
    azure_openai_api_version: str = Field(
        default="2024-06-01",
        validation_alias=AliasChoices("AZURE_OPENAI_API_VERSION", "azure_openai_api_version"),
    )

    # Plain OpenAI fallback for chat completions
    openai_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key")
    )
    chat_model: str = Field(
        default="gpt-4o-mini", validation_alias=AliasChoices("CHAT_MODEL", "chat_model")
    )

    # Skillset chunking
    split_page_length: int = Field(
        default=6000, validation_alias=AliasChoices("SPLIT_PAGE_LENGTH", "split_page_length")
    )
    split_chunk_length: int = Field(
        default=2000, validation_alias=AliasChoices("SPLIT_CHUNK_LENGTH", "split_chunk_length")
    )
    split_chunk_overlap: int = Field(
        default=200, validation_alias=AliasChoices("SPLIT_CHUNK_OVERLAP", "split_chunk_overlap")
    )
    split_language_code: str = Field(
        default="de", validation_alias=AliasChoices("SPLIT_LANGUAGE_CODE", "split_language_code")
    )

    # Indexer wait
    index_wait_timeout_s: float = Field(
        default=600.0, validation_alias=AliasChoices("INDEX_WAIT_TIMEOUT_S", "index_wait_timeout_s")
    )
    index_wait_poll_interval_s: float = Field(
        default=3.0,
        validation_alias=AliasChoices("INDEX_WAIT_POLL_INTERVAL_S", "index_wait_poll_interval_s"),
    )

    # Retrieval
    retrieval_default_k: int = Field(
        default=3, validation_alias=AliasChoices("RETRIEVAL_DEFAULT_K", "retrieval_default_k")
    )

    # Ingest
    ingest_fetch_timeout_s: float = Field(
        default=60.0, validation_alias=AliasChoices("INGEST_FETCH_TIMEOUT_S", "ingest_fetch_timeout_s")
    )
    ingest_max_document_bytes: int = Field(
        default=64 * 1024 * 1024,
        validation_alias=AliasChoices("INGEST_MAX_DOCUMENT_BYTES", "ingest_max_document_bytes"),
    )
    # JSON list of directories local paths may be read from; empty disables local files
    ingest_allowed_local_roots: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("INGEST_ALLOWED_LOCAL_ROOTS", "ingest_allowed_local_roots"),
    )

    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))

    # pydantic-settings configuration
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @property
    def chunking(self) -> ChunkingDefaults:
        return ChunkingDefaults(
            page_length=self.split_page_length,
            chunk_length=self.split_chunk_length,
            chunk_overlap=self.split_chunk_overlap,
            language_code=self.split_language_code,
        )

    @property
    def index_wait(self) -> IndexWaitDefaults:
        return IndexWaitDefaults(
            timeout_s=self.index_wait_timeout_s,
            poll_interval_s=self.index_wait_poll_interval_s,
        )

    @property
    def search_base_url(self) -> str:
        """Search endpoint without trailing slash; required for any search call."""
        if not self.search_endpoint:
            raise RuntimeError("AZURE_SEARCH_ENDPOINT is not configured")
        return self.search_endpoint.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
