# Overview: Identity of the person performing a stock operation.

from __future__ import annotations

from dataclasses import dataclass

ROLE_ADMIN = "Admin"
ROLE_USER = "User"
ROLES = (ROLE_ADMIN, ROLE_USER)


@dataclass(frozen=True)
class Actor:
    """
    Who is acting. Authentication happens upstream; the stock core only
    needs the username for log attribution and the role for opname commits.
    """
    username: str
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
