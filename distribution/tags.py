"""
distribution/tags.py - Pull a recipient MoniTag out of free text.
"""

import re
from typing import Optional

from core.constants import RESERVED_HANDLES

TAG_PATTERN = re.compile(r"@(\w[\w-]*)")


def extract_recipient_tag(text: Optional[str]) -> Optional[str]:
    """
    First @tag in `text` that is not a reserved handle, lower-cased.

    >>> extract_recipient_tag("@monibot send to @Alice pls")
    'alice'
    """
    if not text:
        return None
    for match in TAG_PATTERN.finditer(text):
        tag = match.group(1).lower()
        if tag not in RESERVED_HANDLES:
            return tag
    return None
