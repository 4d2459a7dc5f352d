from sqlalchemy.orm import Session

from backend.core.errors import NotFound
from backend.models.user import Role, User


def get_active_user(db: Session, user_id: int, role: Role) -> User:
    """Fetch an active user holding ``role`` or raise NotFound."""
    user = db.query(User).filter(
        User.id == user_id,
        User.role == role.value,
        User.active.is_(True),
    ).first()
    if user is None:
        raise NotFound(f'{role.value.capitalize()} {user_id} not found.')
    return user
