"""
Cache Key Derivation
validation_hub/pipeline/cache_key.py

Every cache tier addresses tile data by the same key:

    tile:v2:<tile_type>:<idea digest>:<sha256 of canonical request>

The canonical request is (tile_type, subject, session_id, params) where
subject is the normalized idea text, or the user id when the idea is blank.
Normalization makes "  AI  Tutor " and "ai tutor" the same idea and drops
empty-valued params, so semantically identical requests share a key.
"""

import hashlib
import json
import re
from typing import Dict, Mapping

from validation_hub.models.tile import TileRequest

CACHE_PREFIX = "tile"
CACHE_VERSION = "v2"

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_idea(idea_text: str) -> str:
    """Trim, lower-case and collapse internal whitespace."""
    if not idea_text:
        return ""
    return _WHITESPACE_RE.sub(" ", idea_text.strip().lower())


def normalize_params(params: Mapping[str, str]) -> Dict[str, str]:
    """Lower-cased keys, trimmed values (case kept), empty values dropped, sorted by key."""
    normalized: Dict[str, str] = {}
    for key, value in params.items():
        norm_key = str(key).strip().lower()
        norm_value = _WHITESPACE_RE.sub(" ", str(value).strip())
        if norm_key and norm_value:
            normalized[norm_key] = norm_value
    return dict(sorted(normalized.items()))


def idea_digest(idea_text: str) -> str:
    """Short stable digest of a normalized idea, used to group keys per idea."""
    return hashlib.sha256(normalize_idea(idea_text).encode("utf-8")).hexdigest()[:16]


def build_cache_key(request: TileRequest) -> str:
    """
    Derive the CacheKey for a tile request.

    Args:
        request: The tile request

    Returns:
        Deterministic key string shared by the persisted and ephemeral tiers
    """
    idea = normalize_idea(request.idea_text)
    if idea:
        subject = {"idea": idea}
    else:
        subject = {"user": (request.user_id or "").strip()}

    canonical = json.dumps(
        {
            "tile_type": request.tile_type,
            **subject,
            "session": (request.session_id or "").strip(),
            "params": normalize_params(request.params),
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    # idea digest segment lets invalidate_idea() match every tile for one idea
    return f"{CACHE_PREFIX}:{CACHE_VERSION}:{request.tile_type}:{idea_digest(idea)}:{digest[:32]}"


def idea_key_pattern(idea_text: str) -> str:
    """Glob pattern matching every key derived from one idea."""
    return f"{CACHE_PREFIX}:{CACHE_VERSION}:*:{idea_digest(idea_text)}:*"
