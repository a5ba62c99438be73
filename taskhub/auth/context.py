from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from taskhub.project_manager.enums import UserRole


@dataclass(frozen=True)
class Actor:
    """
    The authenticated identity making a request.

    Built once per request by the credential check and passed explicitly
    into every handler and policy decision. ``role`` is whatever the
    identity carries; anything outside ``UserRole`` simply matches no
    privileged rule.
    """

    id: str
    role: Union[UserRole, str]

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER
