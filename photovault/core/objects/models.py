"""
Domain models for brokered object storage.

These models have no dependencies on the storage SDK or the web framework.
A policy is just an owner and a visibility; how it is persisted (object
metadata) is the broker's concern, not the model's.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Permission(Enum):
    """What a requester wants to do with an object."""
    READ = "read"
    WRITE = "write"


class Visibility(Enum):
    """Who may read an object besides its owner."""
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class AclPolicy:
    """
    Access policy attached to a single object.

    Frozen because a policy is a value. Changing visibility means
    writing a new policy, never mutating the attached one.
    """
    owner: str
    visibility: Visibility

    def __post_init__(self) -> None:
        if not self.owner:
            raise ValueError("Policy owner cannot be empty")

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    def to_json(self) -> str:
        """Serialize to the document stored in object metadata."""
        return json.dumps(
            {"owner": self.owner, "visibility": self.visibility.value},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "AclPolicy":
        """
        Parse a stored policy document.

        Raises ValueError for anything that isn't a well-formed policy.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Policy is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Policy must be a JSON object")

        owner = data.get("owner")
        if isinstance(owner, int) and not isinstance(owner, bool):
            owner = str(owner)
        if not isinstance(owner, str):
            raise ValueError("Policy owner must be a string")

        return cls(owner=owner, visibility=Visibility(data.get("visibility")))


@dataclass(frozen=True)
class UploadCredential:
    """
    A signed upload URL and the canonical path the object will live at.

    Never persisted. The backend enforces the expiry baked into the URL.
    """
    upload_url: str
    object_path: str


@dataclass(frozen=True)
class ObjectProperties:
    """Backend-reported properties of a stored object."""
    content_length: int
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: Optional[str] = None
