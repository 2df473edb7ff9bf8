import pytest

from pulsetrade.auth import Auth
from pulsetrade.encryption import Encryption
from pulsetrade.errors import AuthenticationError, ValidationError
from pulsetrade.user import UserRole

SECRET = "test-secret-with-enough-length-for-hs256"


@pytest.fixture
def encryption():
    return Encryption(SECRET, token_expiry=3600)


@pytest.fixture
def auth(storage, encryption, settings_service):
    return Auth(storage, encryption, settings_service)


def test_register_and_login(auth):
    user = auth.register("trader", "trader@example.com", "secret1", full_name="Tim Trader")

    assert user.role == UserRole.USER
    assert user.balance == "0"
    assert user.full_name == "Tim Trader"
    assert user.password_hash != "secret1"

    logged_in, token = auth.login("trader", "secret1")

    assert logged_in.id == user.id
    assert auth.verify_token(token).id == user.id


@pytest.mark.parametrize("username,email,password", [
    ("ab", "ab@example.com", "secret1"),
    ("trader", "not-an-email", "secret1"),
    ("trader", "trader@example.com", "short"),
])
def test_register_rejects_bad_input(auth, username, email, password):
    with pytest.raises(ValidationError):
        auth.register(username, email, password)


def test_register_rejects_duplicates(auth):
    auth.register("trader", "trader@example.com", "secret1")

    with pytest.raises(ValidationError):
        auth.register("trader", "other@example.com", "secret1")
    with pytest.raises(ValidationError):
        auth.register("other", "trader@example.com", "secret1")


def test_registrations_can_be_closed(auth, settings_service, admin):
    settings_service.update(admin, {"allowRegistrations": False})

    with pytest.raises(ValidationError):
        auth.register("trader", "trader@example.com", "secret1")


def test_login_failures_are_indistinguishable(auth):
    auth.register("trader", "trader@example.com", "secret1")

    with pytest.raises(AuthenticationError) as wrong_password:
        auth.login("trader", "secret2")
    with pytest.raises(AuthenticationError) as unknown_user:
        auth.login("nobody", "secret1")
    assert str(wrong_password.value) == str(unknown_user.value)


def test_bad_tokens_are_rejected(auth, storage, settings_service):
    user = auth.register("trader", "trader@example.com", "secret1")
    expired = Auth(storage, Encryption(SECRET, token_expiry=-10), settings_service).generate_token(user.id)
    forged = Auth(storage, Encryption("another-secret-with-enough-length-too"), settings_service).generate_token(user.id)

    for token in ("", "garbage", expired, forged):
        with pytest.raises(AuthenticationError):
            auth.verify_token(token)


def test_token_for_deleted_user_is_rejected(auth):
    token = auth.generate_token(4242)

    with pytest.raises(AuthenticationError):
        auth.verify_token(token)


def test_change_password(auth):
    user = auth.register("trader", "trader@example.com", "secret1")

    with pytest.raises(ValidationError):
        auth.change_password(user.id, "wrong", "newsecret")
    auth.change_password(user.id, "secret1", "newsecret")

    auth.login("trader", "newsecret")
    with pytest.raises(AuthenticationError):
        auth.login("trader", "secret1")


def test_ensure_admin_user_is_idempotent(auth, storage):
    created = auth.ensure_admin_user("root", "root@example.com", "rootpass", "1000")

    assert created.role == UserRole.ADMIN
    assert created.balance == "1000.00"
    assert auth.ensure_admin_user("root", "root@example.com", "rootpass").id == created.id
    assert len(storage.get_all_users()) == 1


def test_ensure_admin_user_needs_password(auth, storage):
    assert auth.ensure_admin_user("root", "root@example.com", "") is None
    assert storage.get_all_users() == []
