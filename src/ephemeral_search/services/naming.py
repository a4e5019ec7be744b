"""Deterministic per-session resource names.

Every management resource gets `<kind prefix><slug>-<hash>` where the slug is
a lossy, grammar-safe rendering of the session id and the hash (SHA-1 of the
raw id) keeps distinct sessions apart even when their slugs collide. Only the
slug is ever truncated.
"""

from __future__ import annotations

import hashlib
import re
import string
import unicodedata
from urllib.parse import quote

from src.ephemeral_search.domain.common import MAX_RESOURCE_NAME_LEN, ResourceNameSet


HASH_LEN = 8
PLACEHOLDER_SLUG = "s"

CONNECTOR_PREFIX = "ds-"
INDEX_PREFIX = "idx-"
PIPELINE_PREFIX = "ss-"
RUNNER_PREFIX = "idxr-"

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)
_INVALID_RUN = re.compile(r"[^a-z0-9-]+")
_DASHES = re.compile(r"-{2,}")
# Everything else is percent-encoded; '%' itself is never safe, so encoding stays injective
_PREFIX_SAFE = "-_.~:@=+,;!"


def session_hash(session_id: str) -> str:
    return hashlib.sha1(session_id.encode("utf-8")).hexdigest()[:HASH_LEN]


def session_slug(session_id: str) -> str:
    """Grammar-safe slug: `"Conv Ëmäil_123!"` -> `"conv-ma-il-123"`."""
    folded = unicodedata.normalize("NFKD", session_id.translate(_ASCII_LOWER))
    slug = _INVALID_RUN.sub("-", folded)
    slug = _DASHES.sub("-", slug).strip("-")
    return slug or PLACEHOLDER_SLUG


def build_resource_name(prefix: str, session_id: str) -> str:
    digest = session_hash(session_id)
    keep = MAX_RESOURCE_NAME_LEN - len(prefix) - len(digest) - 1
    slug = session_slug(session_id)[:keep].rstrip("-") or PLACEHOLDER_SLUG
    return f"{prefix}{slug}-{digest}"


def blob_prefix(session_id: str, root: str = "runs") -> str:
    folder = quote(session_id, safe=_PREFIX_SAFE) if session_id else PLACEHOLDER_SLUG
    return f"{root.strip('/')}/{folder}/"


def derive_names(session_id: str, *, prefix_root: str = "runs") -> ResourceNameSet:
    return ResourceNameSet(
        connector_name=build_resource_name(CONNECTOR_PREFIX, session_id),
        index_name=build_resource_name(INDEX_PREFIX, session_id),
        pipeline_name=build_resource_name(PIPELINE_PREFIX, session_id),
        runner_name=build_resource_name(RUNNER_PREFIX, session_id),
        blob_prefix=blob_prefix(session_id, prefix_root),
    )
