"""School context of the signed-in staff member, passed explicitly to use cases"""
from dataclasses import dataclass


@dataclass(frozen=True)
class SchoolContext:
    school_id: int
    user_id: int
    is_admin: bool = False
    timezone: str = "Africa/Cairo"
