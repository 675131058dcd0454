"""
Holder roles enumeration.

Defines the staff role types of the institute.
"""

import enum


class HolderRole(str, enum.Enum):
    """
    Staff role enumeration.

    Roles:
        ADMIN: Institute administrator, approves finance records
        PARTNER: Business partner, approves finance records
        TEACHER: Teaching staff
        STAFF: Office staff (default role)
        DRIVER: Transport staff
    """
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"
    TEACHER = "TEACHER"
    STAFF = "STAFF"
    DRIVER = "DRIVER"


# Roles allowed to approve, reject and reimburse finance records
APPROVER_ROLES = [HolderRole.ADMIN, HolderRole.PARTNER]
