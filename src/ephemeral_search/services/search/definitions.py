"""Resource bodies for one session: data source, index, skillset, indexer.

The index schema is fixed. Chunks land as independent documents keyed by
`content_id`, grouped by `text_document_id` (the base64 blob path of their
parent); the parent document itself is never indexed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from src.ephemeral_search.domain.common import ResourceNameSet
from src.ephemeral_search.settings import ChunkingDefaults, Settings


KEY_FIELD = "content_id"
PARENT_FIELD = "text_document_id"
TITLE_FIELD = "document_title"
CONTENT_FIELD = "content_text"
SOURCE_URL_FIELD = "source_url"
VECTOR_FIELD = "content_embedding"

RETRIEVABLE_FIELDS = (TITLE_FIELD, CONTENT_FIELD, SOURCE_URL_FIELD, PARENT_FIELD)

ALGORITHM_NAME = "session-hnsw"
PROFILE_NAME = "session-vector-profile"
VECTORIZER_NAME = "session-aoai-vectorizer"
SEMANTIC_CONFIG_NAME = "session-semantic"

# Native output sizes; text-embedding-3-* may be shortened, ada-002 may not
NATIVE_DIMENSIONS = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}
SHORTENABLE_MODELS = {"text-embedding-3-small", "text-embedding-3-large"}


def resolve_embedding_dimensions(model_name: str, configured: Optional[int]) -> int:
    """Vector field size for `model_name`; raises ValueError on any mismatch."""
    native = NATIVE_DIMENSIONS.get(model_name)
    if native is None:
        if configured is None:
            raise ValueError(f"Unknown embedding model {model_name!r}; set AZURE_SEARCH_EMBED_DIM explicitly")
        if configured < 1:
            raise ValueError(f"Embedding dimensions must be positive, got {configured}")
        return configured
    if configured is None or configured == native:
        return native
    if model_name not in SHORTENABLE_MODELS:
        raise ValueError(f"{model_name} always produces {native} dimensions, not {configured}")
    if not 1 <= configured <= native:
        raise ValueError(f"{model_name} supports 1..{native} dimensions, not {configured}")
    return configured


@dataclass(frozen=True)
class EmbeddingTarget:
    resource_uri: str
    deployment_id: str
    model_name: str
    dimensions: int
    api_key: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingTarget":
        if not settings.azure_openai_endpoint:
            raise ValueError("AZURE_OPENAI_ENDPOINT is required for server-side vectorization")
        model = settings.azure_openai_embed_model
        return cls(
            resource_uri=settings.azure_openai_endpoint.rstrip("/"),
            deployment_id=settings.azure_openai_embed_deployment or model,
            model_name=model,
            dimensions=resolve_embedding_dimensions(model, settings.embed_dimensions),
            api_key=settings.azure_openai_api_key,
        )

    def openai_parameters(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "resourceUri": self.resource_uri,
            "deploymentId": self.deployment_id,
            "modelName": self.model_name,
        }
        if self.api_key:
            params["apiKey"] = self.api_key
        return params


def data_source_definition(
    names: ResourceNameSet, *, container: str, connection_string: str
) -> Dict[str, Any]:
    return {
        "name": names.connector_name,
        "description": "Temporary chat session documents",
        "type": "azureblob",
        "credentials": {"connectionString": connection_string},
        "container": {"name": container, "query": names.blob_prefix},
        "dataDeletionDetectionPolicy": {
            "@odata.type": "#Microsoft.Azure.Search.NativeBlobSoftDeleteDeletionDetectionPolicy",
        },
    }


def index_definition(names: ResourceNameSet, embedding: EmbeddingTarget) -> Dict[str, Any]:
    return {
        "name": names.index_name,
        "fields": [
            {"name": KEY_FIELD, "type": "Edm.String", "key": True, "analyzer": "keyword",
             "searchable": True, "retrievable": True, "filterable": False, "sortable": True, "facetable": False},
            {"name": PARENT_FIELD, "type": "Edm.String", "searchable": False, "filterable": True, "retrievable": True},
            {"name": TITLE_FIELD, "type": "Edm.String", "searchable": True, "filterable": False, "retrievable": True},
            {"name": CONTENT_FIELD, "type": "Edm.String", "searchable": True, "filterable": False, "retrievable": True},
            {"name": SOURCE_URL_FIELD, "type": "Edm.String", "searchable": False, "filterable": True, "retrievable": True},
            {"name": VECTOR_FIELD, "type": "Collection(Edm.Single)", "searchable": True, "retrievable": True,
             "dimensions": embedding.dimensions, "vectorSearchProfile": PROFILE_NAME},
        ],
        "similarity": {"@odata.type": "#Microsoft.Azure.Search.BM25Similarity"},
        "semantic": {
            "defaultConfiguration": SEMANTIC_CONFIG_NAME,
            "configurations": [
                {
                    "name": SEMANTIC_CONFIG_NAME,
                    "prioritizedFields": {
                        "titleField": {"fieldName": TITLE_FIELD},
                        "prioritizedContentFields": [{"fieldName": CONTENT_FIELD}],
                        "prioritizedKeywordsFields": [],
                    },
                }
            ],
        },
        "vectorSearch": {
            "algorithms": [
                {
                    "name": ALGORITHM_NAME,
                    "kind": "hnsw",
                    "hnswParameters": {"metric": "cosine", "m": 4, "efConstruction": 400, "efSearch": 500},
                }
            ],
            "profiles": [{"name": PROFILE_NAME, "algorithm": ALGORITHM_NAME, "vectorizer": VECTORIZER_NAME}],
            "vectorizers": [
                {
                    "name": VECTORIZER_NAME,
                    "kind": "azureOpenAI",
                    "azureOpenAIParameters": embedding.openai_parameters(),
                }
            ],
            "compressions": [],
        },
    }


def skillset_definition(
    names: ResourceNameSet, embedding: EmbeddingTarget, chunking: ChunkingDefaults
) -> Dict[str, Any]:
    """Split -> chunk -> embed, projected chunk-by-chunk into the session index."""
    chunk_ctx = "/document/pages/*/chunks/*"
    embed_skill: Dict[str, Any] = {
        "@odata.type": "#Microsoft.Skills.Text.AzureOpenAIEmbeddingSkill",
        "name": "embed-chunks",
        "description": "Compute embeddings for each chunk",
        "context": chunk_ctx,
        "dimensions": embedding.dimensions,
        **embedding.openai_parameters(),
        "inputs": [{"name": "text", "source": chunk_ctx}],
        "outputs": [{"name": "embedding", "targetName": "chunk_vector"}],
    }
    return {
        "name": names.pipeline_name,
        "description": "Text-only pipeline: Split -> Chunk -> Embeddings",
        "skills": [
            {
                "@odata.type": "#Microsoft.Skills.Text.SplitSkill",
                "name": "split-to-pages",
                "description": "Split full document text into pages",
                "context": "/document",
                "defaultLanguageCode": chunking.language_code,
                "textSplitMode": "pages",
                "maximumPageLength": chunking.page_length,
                "pageOverlapLength": 0,
                "maximumPagesToTake": 0,
                "unit": "characters",
                "inputs": [{"name": "text", "source": "/document/content"}],
                "outputs": [{"name": "textItems", "targetName": "pages"}],
            },
            {
                "@odata.type": "#Microsoft.Skills.Text.SplitSkill",
                "name": "split-pages-to-chunks",
                "description": "Chunk pages into overlapping segments",
                "context": "/document/pages/*",
                "defaultLanguageCode": chunking.language_code,
                "textSplitMode": "pages",
                "maximumPageLength": chunking.chunk_length,
                "pageOverlapLength": chunking.chunk_overlap,
                "maximumPagesToTake": 0,
                "unit": "characters",
                "inputs": [{"name": "text", "source": "/document/pages/*"}],
                "outputs": [{"name": "textItems", "targetName": "chunks"}],
            },
            embed_skill,
        ],
        "indexProjections": {
            "selectors": [
                {
                    "targetIndexName": names.index_name,
                    "parentKeyFieldName": PARENT_FIELD,
                    "sourceContext": chunk_ctx,
                    "mappings": [
                        {"name": CONTENT_FIELD, "source": chunk_ctx},
                        {"name": VECTOR_FIELD, "source": f"{chunk_ctx}/chunk_vector"},
                        {"name": TITLE_FIELD, "source": "/document/document_title"},
                        {"name": SOURCE_URL_FIELD, "source": "/document/metadata_storage_path"},
                    ],
                }
            ],
            "parameters": {"projectionMode": "skipIndexingParentDocuments"},
        },
    }


def indexer_definition(names: ResourceNameSet) -> Dict[str, Any]:
    return {
        "name": names.runner_name,
        "dataSourceName": names.connector_name,
        "skillsetName": names.pipeline_name,
        "targetIndexName": names.index_name,
        "disabled": False,
        "schedule": None,
        "parameters": {
            "batchSize": 1,
            "maxFailedItems": -1,
            "maxFailedItemsPerBatch": 0,
            "configuration": {
                "allowSkillsetToReadFileData": True,
                "dataToExtract": "contentAndMetadata",
                "parsingMode": "default",
                "failOnUnsupportedContentType": False,
                "indexStorageMetadataOnlyForOversizedDocuments": True,
                "failOnUnprocessableDocument": False,
            },
        },
        "fieldMappings": [
            {"sourceFieldName": "metadata_storage_name", "targetFieldName": TITLE_FIELD},
            {"sourceFieldName": "metadata_storage_path", "targetFieldName": SOURCE_URL_FIELD},
            {"sourceFieldName": "metadata_storage_path", "targetFieldName": PARENT_FIELD,
             "mappingFunction": {"name": "base64Encode"}},
        ],
        "outputFieldMappings": [],
    }
