"""
Access decisions for stored objects.

Pure functions only. No I/O happens here, so the whole decision table
can be tested with literal inputs.
"""

from typing import Optional

from .models import AclPolicy, Permission


def can_access(
    policy: Optional[AclPolicy],
    requester_id: Optional[str],
    permission: Permission = Permission.READ,
) -> bool:
    """
    Decide whether a requester may perform an operation on an object.

    Rules are evaluated in order and the first match wins:
    1. No policy attached: allow.
    2. Public object and a read: allow.
    3. Anonymous requester: deny.
    4. Requester owns the object: allow.
    5. Otherwise deny.

    Rule 1 means an object that never got a policy (for example because
    the owning workflow failed between upload and policy attachment) is
    readable by anyone until a policy is attached.
    """
    if policy is None:
        return True

    if policy.is_public and permission is Permission.READ:
        return True

    if not requester_id:
        return False

    return policy.owner == str(requester_id)
