"""Listing entries returned by the directory server.

Both endpoints answer with a JSON array of ``{"name": ..., "path": ...}``
objects.  ``name`` is the display label, ``path`` the server-relative
identifier that is sent back as the ``dir`` or ``file`` query parameter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Folder:
    name: str
    path: str


@dataclass(frozen=True)
class Song:
    name: str
    path: str


_Entry = TypeVar("_Entry", Folder, Song)


def parse_listing(data: Any, entry_type: type[_Entry]) -> tuple[_Entry, ...]:
    """Turn a decoded JSON payload into a tuple of *entry_type* instances.

    Anything that is not a list yields the empty listing.  Items without a
    string ``name`` and ``path`` are skipped.
    """
    if not isinstance(data, list):
        return ()
    entries = []
    for item in data:
        if (
            isinstance(item, dict)
            and isinstance(item.get("name"), str)
            and isinstance(item.get("path"), str)
        ):
            entries.append(entry_type(name=item["name"], path=item["path"]))
        else:
            logger.warning("Skipping malformed listing entry: %r", item)
    return tuple(entries)
