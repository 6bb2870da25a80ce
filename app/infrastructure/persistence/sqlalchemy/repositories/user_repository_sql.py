from typing import Optional
from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from .....db.models import User
from .....utils import utc_now
from .....application.ports.user_repo import UserRepository, UserDto

class SqlUserRepository(UserRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def _to_dto(self, user: User) -> UserDto:
        return UserDto(
            id=user.id,
            name=user.name,
            role=user.role,
            fcm_token=user.fcm_token,
        )

    def create(self, name: str, role: str = "patient", fcm_token: Optional[str] = None) -> UserDto:
        user = User(name=name, role=role, fcm_token=fcm_token)
        with Session(self.engine) as session:
            session.add(user)
            session.commit()
            session.refresh(user)
            return self._to_dto(user)

    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        with Session(self.engine) as session:
            user = session.exec(select(User).where(User.id == user_id)).first()
            return self._to_dto(user) if user else None

    def get_push_token(self, user_id: str) -> Optional[str]:
        with Session(self.engine) as session:
            return session.exec(select(User.fcm_token).where(User.id == user_id)).first()

    def clear_push_token(self, user_id: str, token: str) -> None:
        # Conditional so a token refreshed in the meantime is kept
        with self.engine.begin() as conn:
            conn.execute(
                update(User)
                .where(User.id == user_id)
                .where(User.fcm_token == token)
                .values(fcm_token=None, updated_at=utc_now())
            )
