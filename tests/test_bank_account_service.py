import pytest

from pulsetrade.errors import BankAccountNotFound, PermissionDenied, ValidationError


def test_first_account_becomes_default(bank_account_service, user):
    first = bank_account_service.create(user.id, "Bangkok Bank", "111-1-11111-1", "Jane Doe")
    second = bank_account_service.create(user.id, "SCB", "222-2-22222-2", "Jane Doe")

    assert first.is_default
    assert not second.is_default


def test_third_account_is_rejected(bank_account_service, user):
    bank_account_service.create(user.id, "Bangkok Bank", "111-1-11111-1", "Jane Doe")
    bank_account_service.create(user.id, "SCB", "222-2-22222-2", "Jane Doe")

    with pytest.raises(ValidationError):
        bank_account_service.create(user.id, "KTB", "333-3-33333-3", "Jane Doe")
    assert len(bank_account_service.list_for_user(user.id)) == 2


def test_deleting_default_promotes_remaining(bank_account_service, user):
    first = bank_account_service.create(user.id, "Bangkok Bank", "111-1-11111-1", "Jane Doe")
    second = bank_account_service.create(user.id, "SCB", "222-2-22222-2", "Jane Doe")

    bank_account_service.delete(user, first.id)

    remaining = bank_account_service.list_for_user(user.id)
    assert [a.id for a in remaining] == [second.id]
    assert remaining[0].is_default


def test_creating_default_clears_sibling(bank_account_service, user):
    first = bank_account_service.create(user.id, "Bangkok Bank", "111-1-11111-1", "Jane Doe")
    second = bank_account_service.create(user.id, "SCB", "222-2-22222-2", "Jane Doe", is_default=True)

    accounts = {a.id: a for a in bank_account_service.list_for_user(user.id)}
    assert not accounts[first.id].is_default
    assert accounts[second.id].is_default


def test_set_default_switches(bank_account_service, user):
    first = bank_account_service.create(user.id, "Bangkok Bank", "111-1-11111-1", "Jane Doe")
    second = bank_account_service.create(user.id, "SCB", "222-2-22222-2", "Jane Doe")

    bank_account_service.set_default(user, second.id)

    accounts = {a.id: a for a in bank_account_service.list_for_user(user.id)}
    assert accounts[second.id].is_default
    assert not accounts[first.id].is_default


def test_update_by_owner_and_admin_only(bank_account_service, user, admin, make_user):
    account = bank_account_service.create(user.id, "Bangkok Bank", "111-1-11111-1", "Jane Doe")

    updated = bank_account_service.update(user, account.id, {"account_name": "Jane D."})
    assert updated.account_name == "Jane D."

    assert bank_account_service.update(admin, account.id, {"bank_name": "KBank"}).bank_name == "KBank"

    with pytest.raises(PermissionDenied):
        bank_account_service.update(make_user(), account.id, {"bank_name": "Other"})


@pytest.mark.parametrize("bank_name,number,name", [
    ("", "111-1-11111-1", "Jane"),
    ("Bank", "12", "Jane"),
    ("Bank", "abc-def-ghij", "Jane"),
    ("Bank", "111-1-11111-1", " "),
])
def test_invalid_account_details(bank_account_service, user, bank_name, number, name):
    with pytest.raises(ValidationError):
        bank_account_service.create(user.id, bank_name, number, name)


def test_missing_account(bank_account_service, user):
    with pytest.raises(BankAccountNotFound):
        bank_account_service.delete(user, 42)
