"""
Canonical object addressing.

Outside the broker, objects are always referred to as
``/api/objects/<key>``. Paths authored against the raw storage URL are
rewritten into that form before anything else looks at them.
"""

from typing import Optional
from urllib.parse import unquote

OBJECT_PATH_PREFIX = "/api/objects/"
UPLOAD_KEY_PREFIX = "uploads/"


def path_for_key(key: str) -> str:
    """Build the canonical path for a storage key."""
    return f"{OBJECT_PATH_PREFIX}{key.lstrip('/')}"


def key_for_path(object_path: str) -> Optional[str]:
    """
    Extract the storage key from a canonical path.

    Returns None when the path is outside the managed namespace or names
    no key at all.
    """
    if not is_managed_path(object_path):
        return None
    key = object_path[len(OBJECT_PATH_PREFIX):]
    return key or None


def is_managed_path(path: str) -> bool:
    return path.startswith(OBJECT_PATH_PREFIX)


def normalize_object_path(raw_path: str, public_base_url: str) -> str:
    """
    Rewrite a raw storage URL into the canonical object path.

    ``public_base_url`` is the fully-qualified prefix of the container,
    e.g. ``https://account.r2.cloudflarestorage.com/photos/``. Anything not
    under that prefix is returned unchanged; it is either canonical
    already or deliberately points somewhere else.
    """
    if not public_base_url:
        return raw_path

    prefix = public_base_url.rstrip("/") + "/"
    if not raw_path.startswith(prefix):
        return raw_path

    remainder = raw_path[len(prefix):]
    # signed URLs carry the SAS/presign query; it is never part of the key
    for separator in ("?", "#"):
        remainder = remainder.split(separator, 1)[0]

    return path_for_key(unquote(remainder))
