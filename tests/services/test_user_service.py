import pytest

from photoset.core.errors import ForbiddenError
from photoset.models.user import User
from photoset.services.users.service import UserService


def test_get_or_create_is_idempotent(db):
    service = UserService(db)
    first = service.get_or_create_user(777)
    second = service.get_or_create_user(777)
    assert first.id == second.id
    assert db.query(User).count() == 1


def test_username_refreshed(db, factory):
    factory.user(telegram_user_id=778, telegram_username="old")
    user = UserService(db).get_or_create_user(778, telegram_username="new")
    assert user.telegram_username == "new"


def test_banned_user_rejected(db, factory):
    user = factory.user(is_banned=True, ban_reason="chargeback")
    with pytest.raises(ForbiddenError) as exc:
        UserService(db).ensure_not_banned(user)
    assert exc.value.details == {"reason": "chargeback"}


def test_active_user_passes(db, factory):
    UserService(db).ensure_not_banned(factory.user())
