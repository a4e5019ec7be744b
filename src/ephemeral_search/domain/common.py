from __future__ import annotations

import re
from typing import Literal, Annotated

from pydantic import BaseModel, Field, model_validator


# Names accepted by the search service for data sources, indexes, skillsets and indexers
MAX_RESOURCE_NAME_LEN = 128
RESOURCE_NAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9]|-(?=[a-z0-9]))*$")

# Indexer run lifecycle as reported by the status endpoint
RunStatus = Literal["queued", "running", "success", "transientFailure", "error"]

ResourceKind = Literal["runner", "pipeline", "index", "connector", "blob", "marker"]

ResourceName = Annotated[str, Field(min_length=1, max_length=MAX_RESOURCE_NAME_LEN)]


def is_valid_resource_name(name: str) -> bool:
    return len(name) <= MAX_RESOURCE_NAME_LEN and RESOURCE_NAME_RE.match(name) is not None


class ResourceNameSet(BaseModel):
    """Every name a session owns; a pure function of the session id."""

    connector_name: ResourceName
    index_name: ResourceName
    pipeline_name: ResourceName
    runner_name: ResourceName
    blob_prefix: str

    @model_validator(mode="after")
    def _check_grammar(self) -> "ResourceNameSet":
        for name in (self.connector_name, self.index_name, self.pipeline_name, self.runner_name):
            if not is_valid_resource_name(name):
                raise ValueError(f"Invalid search resource name: {name!r}")
        if not self.blob_prefix.endswith("/"):
            raise ValueError("blob_prefix must end with '/'")
        return self

    def management_names(self) -> tuple[str, str, str, str]:
        return self.runner_name, self.pipeline_name, self.index_name, self.connector_name
