"""
Shared enumerations for the campus parking platform.
"""

import enum


class UserRole(str, enum.Enum):
    """
    Role carried in the identity token.

    Roles:
        USER: Student or staff member (owner and/or renter)
        ADMIN: Operator who resolves disputes and runs sweeps
    """
    USER = "USER"
    ADMIN = "ADMIN"


class GradeLevel(str, enum.Enum):
    """Grade level of a student driver."""
    FRESHMAN = "FRESHMAN"
    SOPHOMORE = "SOPHOMORE"
    JUNIOR = "JUNIOR"
    SENIOR = "SENIOR"


class VehicleSize(str, enum.Enum):
    """Vehicle size, used for compact-only spot compatibility."""
    COMPACT = "COMPACT"
    STANDARD = "STANDARD"
    LARGE = "LARGE"


class Weekday(int, enum.Enum):
    """School weekdays covered by a schedule profile."""
    MON = 0
    TUE = 1
    WED = 2
    THU = 3
    FRI = 4


class MatchKind(str, enum.Enum):
    """Kind of arrangement a compatibility score is computed for."""
    TANDEM = "TANDEM"  # Two users sharing one spot sequentially
    CARPOOL = "CARPOOL"  # A user joining a shared-ride group
