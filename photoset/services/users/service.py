from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from photoset.core.errors import ForbiddenError
from photoset.models.user import User


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_telegram_id(self, telegram_user_id: int) -> User | None:
        return self.db.query(User).filter(User.telegram_user_id == telegram_user_id).one_or_none()

    def get_or_create_user(self, telegram_user_id: int, telegram_username: str | None = None) -> User:
        user = self.get_by_telegram_id(telegram_user_id)
        if user:
            if telegram_username is not None and user.telegram_username != telegram_username:
                user.telegram_username = telegram_username
                self.db.add(user)
                self.db.commit()
                self.db.refresh(user)
            return user
        user = User(telegram_user_id=telegram_user_id, telegram_username=telegram_username)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # concurrent first contact created the row
            self.db.rollback()
            return self.get_by_telegram_id(telegram_user_id)
        self.db.refresh(user)
        return user

    def ensure_not_banned(self, user: User) -> None:
        if user.is_banned:
            raise ForbiddenError(
                "Доступ заблокирован",
                details={"reason": user.ban_reason} if user.ban_reason else None,
            )
