"""Tests for avatar hint parsing and AvatarService.resolve."""
import pytest

from photoset.core.errors import AvatarNotFoundError, NoReferenceImagesError
from photoset.models.avatar import Avatar
from photoset.models.reference_image import ReferenceImage
from photoset.services.avatars.service import (
    AvatarService,
    ExistingAvatarId,
    NewAvatarRequest,
    parse_avatar_hint,
)


def jpeg_data_url(size_chars: int = 100_000) -> str:
    return "data:image/jpeg;base64," + "A" * size_chars


class TestParseAvatarHint:
    @pytest.mark.parametrize("value, expected", [(5, 5), ("42", 42), (" 7 ", 7), (2_147_483_647, 2_147_483_647)])
    def test_persisted_ids(self, value, expected):
        assert parse_avatar_hint(value) == ExistingAvatarId(id=expected)

    @pytest.mark.parametrize("value", [1739272345123, "1739272345123", 0, -3, "abc", "12abc", None, True, 3.5])
    def test_placeholders(self, value):
        assert isinstance(parse_avatar_hint(value), NewAvatarRequest)


class TestResolveSuppliedImages:
    def test_timestamp_hint_creates_avatar(self, db, factory):
        user = factory.user()
        images = [jpeg_data_url(), jpeg_data_url(120_000)]

        resolved = AvatarService(db).resolve(user.id, parse_avatar_hint(1739272345123), images)

        assert resolved.created is True
        avatar = db.query(Avatar).filter(Avatar.id == resolved.avatar_id).one()
        assert avatar.user_id == user.id
        assert avatar.status == "draft"
        assert len(resolved.reference_images) == 2
        assert all(r.success for r in resolved.saved_references)
        assert db.query(ReferenceImage).filter(ReferenceImage.avatar_id == avatar.id).count() == 2

    def test_owned_avatar_is_reused(self, db, factory):
        user = factory.user()
        avatar = factory.avatar(user)

        resolved = AvatarService(db).resolve(user.id, ExistingAvatarId(avatar.id), [jpeg_data_url()])

        assert resolved.avatar_id == avatar.id
        assert resolved.created is False

    def test_foreign_avatar_is_not_reused(self, db, factory):
        owner, intruder = factory.user(), factory.user()
        avatar = factory.avatar(owner)

        resolved = AvatarService(db).resolve(intruder.id, ExistingAvatarId(avatar.id), [jpeg_data_url()])

        assert resolved.avatar_id != avatar.id
        assert resolved.created is True
        assert db.query(ReferenceImage).filter(ReferenceImage.avatar_id == avatar.id).count() == 0

    def test_all_rejected(self, db, factory):
        user = factory.user()
        with pytest.raises(NoReferenceImagesError) as exc:
            AvatarService(db).resolve(user.id, NewAvatarRequest(), ["tiny", "data:image/gif;base64,AAAA"])
        assert [r["index"] for r in exc.value.details["rejectedImages"]] == [0, 1]
        assert db.query(Avatar).count() == 0

    def test_no_images(self, db, factory):
        user = factory.user()
        with pytest.raises(NoReferenceImagesError):
            AvatarService(db).resolve(user.id, NewAvatarRequest(), None)

    def test_partial_rejection_reported(self, db, factory):
        user = factory.user()
        resolved = AvatarService(db).resolve(user.id, NewAvatarRequest(), [jpeg_data_url(), "bad"])
        assert len(resolved.reference_images) == 1
        assert [r.index for r in resolved.rejected] == [1]


class TestResolveStoredReferences:
    def test_stored_references(self, db, factory):
        user = factory.user()
        avatar = factory.avatar(user)
        factory.reference(avatar, "https://cdn.example.com/1.jpg")
        factory.reference(avatar, "https://cdn.example.com/2.jpg")

        resolved = AvatarService(db).resolve(user.id, ExistingAvatarId(avatar.id), None, use_stored_references=True)

        assert resolved.avatar_id == avatar.id
        assert resolved.reference_images == ["https://cdn.example.com/1.jpg", "https://cdn.example.com/2.jpg"]

    def test_foreign_avatar_not_found(self, db, factory):
        owner, intruder = factory.user(), factory.user()
        avatar = factory.avatar(owner)
        factory.reference(avatar)
        with pytest.raises(AvatarNotFoundError):
            AvatarService(db).resolve(intruder.id, ExistingAvatarId(avatar.id), None, use_stored_references=True)

    def test_placeholder_hint_not_found(self, db, factory):
        user = factory.user()
        with pytest.raises(AvatarNotFoundError):
            AvatarService(db).resolve(user.id, NewAvatarRequest(raw="1739272345123"), None, use_stored_references=True)

    def test_avatar_without_references(self, db, factory):
        user = factory.user()
        avatar = factory.avatar(user)
        with pytest.raises(NoReferenceImagesError):
            AvatarService(db).resolve(user.id, ExistingAvatarId(avatar.id), None, use_stored_references=True)


def test_save_references_reports_per_item(db, factory):
    avatar = factory.avatar(factory.user())
    results = AvatarService(db).save_references(avatar.id, ["https://a/1.jpg", "https://a/2.jpg"])
    assert [r.index for r in results] == [0, 1]
    assert all(r.success and r.reference_id for r in results)
