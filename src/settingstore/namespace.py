#!/usr/bin/env python3
"""
Cache Namespace Derivation

Implements:
- derive_namespace(identity, prefix) → "<prefix><slug>.<digest>"
- make_cache_key(namespace, key) → "<namespace>:<key>"

Design:
    digest = SHA256(identity)[:16]
    - The slug is for humans reading redis keys; the digest carries identity
    - Fixed-width digest + ":" terminator, so two different identities can
      never produce a common prefix, whatever the raw keys look like
"""

import hashlib
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "settings."
DIGEST_LENGTH = 16
SLUG_LENGTH = 32

_SLUG_UNSAFE = re.compile(r"[^A-Za-z0-9_]+")


def _slug(identity: str) -> str:
    """Readable tail of the identity: last path/table segment, sanitized."""
    tail = re.split(r"[/#\\:]", identity)[-1] or identity
    slug = _SLUG_UNSAFE.sub("_", tail).strip("_").lower()
    return slug[-SLUG_LENGTH:] or "store"


def derive_namespace(identity: str, prefix: str = DEFAULT_PREFIX) -> str:
    """
    Derive the cache namespace for one backing store.

    Args:
        identity: Stable identity of the store (e.g. "sqlite:/srv/app.db#settings")
        prefix: Configurable cache prefix shared by all stores

    Returns:
        Deterministic namespace string
    """
    if not identity:
        raise ValueError("Store identity must be a non-empty string")

    digest = hashlib.sha256(identity.encode()).hexdigest()[:DIGEST_LENGTH]
    namespace = f"{prefix}{_slug(identity)}.{digest}"

    logger.debug(f"Derived namespace {namespace} for {identity}")
    return namespace


def make_cache_key(namespace: str, key: str) -> str:
    return f"{namespace}:{key}"


@dataclass(frozen=True)
class Namespace:
    """Namespace of one store, with the identity it was derived from."""
    identity: str
    prefix: str = DEFAULT_PREFIX

    @property
    def name(self) -> str:
        return derive_namespace(self.identity, self.prefix)

    def key_for(self, key: str) -> str:
        return make_cache_key(self.name, key)
