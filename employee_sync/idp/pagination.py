"""
Link header parsing for cursor-style pagination.

The provider advertises the next page as an entry of the ``Link`` response
header, e.g.::

    <https://acme.okta.com/api/v1/users?limit=200>; rel="self",
    <https://acme.okta.com/api/v1/users?after=00u1&limit=200>; rel="next"
"""

import re
from typing import List, Optional, Set

from .base import PaginationError

_URL_PATTERN = re.compile(r'^\s*<([^>]*)>\s*$')


def _split_entries(header_value: str) -> List[str]:
    """Split a Link header on commas that are outside of <...>."""
    entries = []
    current = []
    in_url = False
    for char in header_value:
        if char == '<':
            in_url = True
        elif char == '>':
            in_url = False
        if char == ',' and not in_url:
            entries.append(''.join(current))
            current = []
        else:
            current.append(char)
    entries.append(''.join(current))
    return [entry.strip() for entry in entries if entry.strip()]


def _relations(params: List[str]) -> Set[str]:
    rels = set()
    for param in params:
        name, sep, value = param.partition('=')
        if not sep or name.strip().lower() != 'rel':
            continue
        rels.update(value.strip().strip('"').lower().split())
    return rels


def parse_next_link(header_value: Optional[str]) -> Optional[str]:
    """
    Return the URL tagged rel="next" in a Link header, or None.

    Args:
        header_value: Raw header value; several headers may be joined with ", "

    Raises:
        PaginationError: If the entry marked next has no <url> part
    """
    if not header_value:
        return None

    for entry in _split_entries(header_value):
        end = entry.find('>') if entry.startswith('<') else -1
        if end >= 0:
            target, params = entry[:end + 1], entry[end + 1:].split(';')
        else:
            target, *params = entry.split(';')
        if 'next' not in _relations(params):
            continue
        match = _URL_PATTERN.match(target)
        if not match or not match.group(1).strip():
            raise PaginationError(f"Malformed next link entry: {entry!r}")
        return match.group(1).strip()

    return None
