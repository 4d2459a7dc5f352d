from dataclasses import dataclass

from backend.core.errors import PermissionDenied
from backend.models.user import Role


@dataclass(frozen=True)
class CallerContext:
    """Identity and role of whoever is calling a service operation."""

    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def require_role(self, *roles: Role) -> None:
        if self.role not in roles:
            allowed = ', '.join(role.value for role in roles)
            raise PermissionDenied(f'This action requires one of the roles: {allowed}.')

    def require_self_or_admin(self, user_id: int, message: str) -> None:
        if not self.is_admin and self.user_id != user_id:
            raise PermissionDenied(message)
