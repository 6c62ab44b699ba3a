"""Site target declarations: fetch, validate, and cache.

Sites and repositories can declare where feedback about them should go by
publishing ``/.well-known/waymark.json`` or a repository ``.waymark.yml``.
``TargetDeclarationFetcher`` satisfies the resolver's ``DeclarationSource``
protocol.
"""

from waymark.declaration.cache import CacheEntry, CacheStats, DeclarationCache
from waymark.declaration.config import DeclarationConfig
from waymark.declaration.errors import DeclarationError, DeclarationFetchError
from waymark.declaration.fetcher import (
    TargetDeclarationFetcher,
    is_private_address,
    parse_repository_declaration,
    parse_well_known_declaration,
)
from waymark.declaration.validation import (
    ALLOWED_ADAPTERS,
    normalise_adapter,
    validate_declaration,
)

__all__ = [
    "ALLOWED_ADAPTERS",
    "CacheEntry",
    "CacheStats",
    "DeclarationCache",
    "DeclarationConfig",
    "DeclarationError",
    "DeclarationFetchError",
    "TargetDeclarationFetcher",
    "is_private_address",
    "normalise_adapter",
    "parse_repository_declaration",
    "parse_well_known_declaration",
    "validate_declaration",
]
