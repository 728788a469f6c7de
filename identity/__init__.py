"""
identity - Handle resolution collaborator.
"""

from identity.resolver import DirectoryResolver, IdentityResolver, normalize_tag

__all__ = [
    "DirectoryResolver",
    "IdentityResolver",
    "normalize_tag",
]
