"""
identity/resolver.py - MoniTag / platform user resolution.

The engine only depends on the IdentityResolver protocol; DirectoryResolver
is a static implementation backed by config/directory.yaml.
"""

from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

from config import load_directory
from core.exceptions import ConfigError
from core.logging import get_logger
from core.validators import is_valid_address

logger = get_logger("monirouter.identity")


def normalize_tag(tag: str) -> str:
    """'@Alice' -> 'alice'"""
    return tag.strip().lstrip("@").lower()


@runtime_checkable
class IdentityResolver(Protocol):
    """Resolves handles to wallet addresses. None means unresolved."""

    async def resolve_recipient(self, tag: str) -> Optional[str]:
        ...

    async def resolve_sender(self, platform_user_id: str) -> Optional[str]:
        ...


class DirectoryResolver:
    """
    In-memory directory.

    Args:
        tags: MoniTag -> wallet address
        users: platform user id -> MoniTag
    """

    def __init__(self, tags: Optional[Dict[str, str]] = None, users: Optional[Dict[str, str]] = None):
        self._tags: Dict[str, str] = {}
        for tag, address in (tags or {}).items():
            if not is_valid_address(address):
                raise ConfigError(f"Invalid address for @{tag}", details={"tag": tag})
            self._tags[normalize_tag(tag)] = address.lower()
        self._users = {str(uid): normalize_tag(tag) for uid, tag in (users or {}).items()}

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "DirectoryResolver":
        data = load_directory(path)
        return cls(tags=data.get("tags") or {}, users=data.get("users") or {})

    async def resolve_recipient(self, tag: str) -> Optional[str]:
        address = self._tags.get(normalize_tag(tag))
        if address is None:
            logger.debug(f"Unresolved MoniTag @{normalize_tag(tag)}")
        return address

    async def resolve_sender(self, platform_user_id: str) -> Optional[str]:
        tag = self._users.get(str(platform_user_id))
        if tag is None:
            return None
        return self._tags.get(tag)

    def tag_for_user(self, platform_user_id: str) -> Optional[str]:
        return self._users.get(str(platform_user_id))
