"""
Tests for the account directory
"""

import pytest

from atm_ledger.directory import AccountDirectory, InMemoryDirectoryStore, normalize_pin
from atm_ledger.errors import AccountExistsError, AccountNotFoundError, InvalidCredentialsError
from atm_ledger.persistence import hash_secret


@pytest.fixture
def directory(gateway):
    return AccountDirectory(gateway=gateway)


class TestAccountCreation:
    """Test opening accounts"""

    def test_default_opening_balance(self, directory):
        ledger = directory.create("alice")

        assert ledger.balance == 10000
        assert ledger.account_id == "alice"
        assert directory.resolve("alice") is ledger

    def test_explicit_opening_balance(self, directory):
        assert directory.create("bob", initial_balance=250).balance == 250

    def test_configured_default(self, gateway):
        directory = AccountDirectory(gateway=gateway, default_opening_balance=0)

        assert directory.create("carol").balance == 0

    def test_duplicate_username(self, directory):
        directory.create("alice")

        with pytest.raises(AccountExistsError) as exc:
            directory.create("alice")
        assert exc.value.message == "Username already exists."

    def test_username_is_trimmed(self, directory):
        directory.create("  dave ")

        assert directory.find("dave") is not None

    @pytest.mark.parametrize("username", ["", "   ", None])
    def test_empty_username(self, directory, username):
        with pytest.raises(InvalidCredentialsError):
            directory.create(username)

    @pytest.mark.parametrize("username", ["../../etc/passwd", "a/b", "..\\evil", "nul\0name"])
    def test_username_with_path_separator(self, directory, username):
        with pytest.raises(InvalidCredentialsError):
            directory.create(username)

        assert directory.usernames() == []

    def test_negative_opening_balance(self, directory):
        with pytest.raises(ValueError):
            directory.create("erin", initial_balance=-5)
        assert directory.find("erin") is None

    def test_creation_is_persisted(self, directory, storage):
        directory.create("frank", initial_balance=3000)

        rows = storage.find("transactions", {"username": "frank"})
        assert [r["detail"] for r in rows] == ["Account created - initial balance Rs3000"]

    def test_new_ledger_shares_gateway(self, directory, storage):
        directory.create("gina").deposit(10)

        assert storage.count("transactions") == 2

    def test_usernames(self, directory):
        directory.create("zed")
        directory.create("amy")

        assert directory.usernames() == ["amy", "zed"]


class TestLookup:
    """Test resolve and find"""

    def test_find_missing(self, directory):
        assert directory.find("ghost") is None

    def test_resolve_missing(self, directory):
        with pytest.raises(AccountNotFoundError) as exc:
            directory.resolve("ghost")
        assert exc.value.username == "ghost"

    def test_custom_store(self):
        store = InMemoryDirectoryStore()
        directory = AccountDirectory(store=store)
        directory.create("hank")

        assert store.get("hank").ledger is directory.resolve("hank")


class TestPins:
    """Test PIN verification and change"""

    def test_verify_pin(self, directory):
        directory.create("alice", pin="1234")

        assert directory.verify_pin("alice", "1234")
        assert directory.verify_pin("alice", 1234)
        assert not directory.verify_pin("alice", "9999")
        assert not directory.verify_pin("alice", "abcd")
        assert not directory.verify_pin("nobody", "1234")

    def test_account_without_pin_never_verifies(self, directory):
        directory.create("alice")

        assert not directory.verify_pin("alice", "0")

    def test_pin_stored_as_hash(self, directory):
        directory.create("alice", pin="1234")

        assert directory.store.get("alice").pin_hash == hash_secret("1234")

    def test_malformed_pin_on_create(self, directory):
        with pytest.raises(InvalidCredentialsError, match="Invalid PIN format."):
            directory.create("alice", pin="12ab")
        assert directory.find("alice") is None

    def test_change_pin(self, directory, storage):
        directory.create("alice", pin="1234")

        record = directory.change_pin("alice", "1234", "4321")

        assert record.applied
        assert directory.verify_pin("alice", "4321")
        assert not directory.verify_pin("alice", "1234")
        assert storage.load("credentials", "alice")["pin_hash"] == hash_secret("4321")

    def test_change_pin_wrong_current(self, directory):
        directory.create("alice", pin="1234")

        with pytest.raises(InvalidCredentialsError, match="Incorrect current PIN."):
            directory.change_pin("alice", "0000", "4321")
        assert directory.verify_pin("alice", "1234")

    def test_change_pin_malformed_new(self, directory):
        directory.create("alice", pin="1234")

        with pytest.raises(InvalidCredentialsError, match="Invalid PIN format."):
            directory.change_pin("alice", "1234", "x")
        assert directory.verify_pin("alice", "1234")

    def test_change_pin_unknown_user(self, directory):
        with pytest.raises(AccountNotFoundError):
            directory.change_pin("ghost", "1", "2")

    def test_change_pin_without_gateway(self):
        directory = AccountDirectory()
        directory.create("alice", pin="1")

        assert directory.change_pin("alice", "1", "2") is None


class TestNormalizePin:
    """Test PIN parsing"""

    @pytest.mark.parametrize("raw,expected", [
        ("1234", "1234"),
        (1234, "1234"),
        (" 42 ", "42"),
        ("0", "0"),
    ])
    def test_valid(self, raw, expected):
        assert normalize_pin(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", "-1", None, True, "12.5"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidCredentialsError):
            normalize_pin(raw)
