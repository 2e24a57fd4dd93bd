import pytest

from errors import AuthError, ValidationError, auth_error_message
from identity import IdentityService, hash_password, verify_password
from schemas import ProfileUpdate


def test_error_messages():
    assert auth_error_message("wrong-password") == "Invalid email or password"
    assert auth_error_message("user-not-found") == "Invalid email or password"
    assert auth_error_message("email-already-in-use") == "An account with this email already exists"
    assert auth_error_message("something-new") == "An error occurred. Please try again."


def test_password_hash_is_salted():
    first, second = hash_password("fence123"), hash_password("fence123")
    assert first != second
    assert verify_password("fence123", first)
    assert not verify_password("fence124", first)
    assert not verify_password("fence123", "not-a-hash")


def test_create_account_signs_in_as_customer(identity):
    session = identity.create_account("Asha.R@Gmail.com", "fence123", "Asha R", phone="98450 12345")
    assert session.identity.email == "asha.r@gmail.com"
    assert session.role == "Customer"
    assert not session.is_admin
    assert identity.session_from_token(session.token).user_id == session.user_id


def test_duplicate_email_rejected(identity):
    identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    with pytest.raises(AuthError) as exc:
        identity.create_account("ASHA.R@gmail.com", "another1", "Someone Else")
    assert exc.value.code == "email-already-in-use"
    assert exc.value.status_code == 400


def test_weak_password_and_bad_email(identity):
    with pytest.raises(AuthError) as exc:
        identity.create_account("asha.r@gmail.com", "12345", "Asha R")
    assert exc.value.code == "weak-password"
    with pytest.raises(AuthError) as exc:
        identity.create_account("not-an-email", "fence123", "Asha R")
    assert exc.value.code == "invalid-email"
    with pytest.raises(ValidationError):
        identity.create_account("asha.r@gmail.com", "fence123", "  ")


def test_sign_in_failures_share_one_message(identity):
    identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    with pytest.raises(AuthError) as unknown:
        identity.authenticate("nobody@gmail.com", "fence123")
    with pytest.raises(AuthError) as wrong:
        identity.authenticate("asha.r@gmail.com", "wrong-pass")
    assert unknown.value.message == wrong.value.message == "Invalid email or password"
    assert wrong.value.status_code == 401


def test_repeated_failures_lock_the_account(identity):
    identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    for _ in range(2):
        with pytest.raises(AuthError) as exc:
            identity.authenticate("asha.r@gmail.com", "wrong-pass")
        assert exc.value.code == "wrong-password"
    with pytest.raises(AuthError) as exc:
        identity.authenticate("asha.r@gmail.com", "wrong-pass")
    assert exc.value.code == "too-many-requests"
    assert exc.value.status_code == 429
    with pytest.raises(AuthError) as exc:
        identity.authenticate("asha.r@gmail.com", "fence123")
    assert exc.value.code == "too-many-requests"


def test_successful_sign_in_clears_failures(identity, store):
    session = identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    with pytest.raises(AuthError):
        identity.authenticate("asha.r@gmail.com", "wrong-pass")
    identity.authenticate("asha.r@gmail.com", "fence123")
    assert store.read("users", session.user_id)["failed_logins"] == 0


def test_sign_out_invalidates_token(identity):
    session = identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    identity.sign_out(session.token)
    with pytest.raises(AuthError) as exc:
        identity.session_from_token(session.token)
    assert exc.value.code == "invalid-session"


def test_missing_token_is_invalid(identity):
    with pytest.raises(AuthError):
        identity.session_from_token(None)
    with pytest.raises(AuthError):
        identity.session_from_token("made-up")


def test_password_reset_flow(identity, outbox):
    old = identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    token = identity.send_password_reset("asha.r@gmail.com")
    assert outbox == [("asha.r@gmail.com", token)]
    identity.confirm_password_reset(token, "newfence1")

    with pytest.raises(AuthError):
        identity.session_from_token(old.token)
    with pytest.raises(AuthError):
        identity.authenticate("asha.r@gmail.com", "fence123")
    assert identity.authenticate("asha.r@gmail.com", "newfence1").identity.email == "asha.r@gmail.com"

    with pytest.raises(AuthError) as exc:
        identity.confirm_password_reset(token, "again123")
    assert exc.value.code == "invalid-reset-token"


def test_password_reset_for_unknown_account(identity, outbox):
    with pytest.raises(AuthError) as exc:
        identity.send_password_reset("nobody@gmail.com")
    assert exc.value.code == "user-not-found"
    assert outbox == []


def test_profile_update_keeps_role(identity):
    session = identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    profile = identity.update_profile(session, ProfileUpdate(full_name="Asha Rao", location=" Mysuru "))
    assert profile["full_name"] == "Asha Rao"
    assert profile["location"] == "Mysuru"
    assert profile["role"] == "Customer"
    assert "password_hash" not in profile


def test_list_customers_filters_admins(identity):
    identity.create_account("asha.r@gmail.com", "fence123", "Asha R")
    identity.create_account("owner@gmail.com", "fence123", "Owner", role="Admin")
    identity.create_account("vikram.s@gmail.com", "fence123", "Vikram S")
    assert [c["full_name"] for c in identity.list_customers()] == ["Asha R", "Vikram S"]
    assert [c["email"] for c in identity.list_customers(q="vik")] == ["vikram.s@gmail.com"]


def test_unreachable_store_is_a_network_failure(broken_store):
    with pytest.raises(AuthError) as exc:
        IdentityService(broken_store).authenticate("asha.r@gmail.com", "fence123")
    assert exc.value.code == "network-failure"
    assert exc.value.message == "Network error. Please check your internet connection"
