import pytest

from core.database import (
    create_session,
    create_user,
    delete_session,
    delete_sessions_for_user,
    delete_user,
    get_session,
    get_user_by_email,
    list_users_by_role,
    public_user,
    update_user,
    verify_password,
)
from core.errors import DuplicateUser, ValidationError


def test_create_user_hashes_password_and_normalises_email(clean_db):
    user_id = create_user(" Sam@Example.com ", "Passw0rd1", username="sam", full_name="Sam", role="price_manager")
    user = get_user_by_email("sam@example.com")

    assert user["id"] == user_id
    assert user["role"] == "price_manager"
    assert user["password_hash"] != "Passw0rd1"
    assert verify_password("Passw0rd1", user["password_hash"]) is True
    assert verify_password("wrong-pass", user["password_hash"]) is False
    assert "password_hash" not in public_user(user)


def test_create_user_rejects_bad_input(clean_db):
    create_user("sam@example.com", "Passw0rd1")
    with pytest.raises(DuplicateUser):
        create_user("SAM@example.com", "Passw0rd1")
    with pytest.raises(ValidationError):
        create_user("new@example.com", "short")
    with pytest.raises(ValidationError):
        create_user("new@example.com", "Passw0rd1", role="owner")


def test_deactivating_and_deleting(staff):
    driver = staff["driver"]
    assert [u["id"] for u in list_users_by_role("driver")] == [driver["id"]]

    updated = update_user(driver["id"], {"active": False, "full_name": "Van One"})
    assert updated["active"] == 0
    assert updated["full_name"] == "Van One"
    assert update_user(999999, {"role": "admin"}) is None

    assert delete_user(driver["id"]) is True
    assert delete_user(driver["id"]) is False


def test_sessions_can_be_revoked(staff):
    user = staff["quote_creator"]
    token = create_session(user["id"])
    assert get_session(token)["user_id"] == user["id"]

    delete_session(token)
    assert get_session(token) is None

    other = create_session(user["id"])
    delete_sessions_for_user(user["id"])
    assert get_session(other) is None
