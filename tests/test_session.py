import pytest

from database import Database, SqliteSessionStorage
from models import Address
from session import SessionStore

HOME = Address("Asha Rao", "9876543210", "12 MG Road", "Flat 4", "Pune", "MH", "411001")


class AuthApi:
    def __init__(self):
        self.token = None
        self.saved_addresses = None

    async def login(self, email, password):
        return {"_id": "U1", "name": "Asha", "email": email, "token": "tok-1", "addresses": []}

    async def signup(self, name, email, password):
        return {"_id": "U2", "name": name, "email": email, "token": "tok-2", "addresses": []}

    async def update_addresses(self, addresses):
        self.saved_addresses = addresses
        return {"addresses": addresses}


@pytest.fixture
def storage():
    return SqliteSessionStorage(Database(":memory:"))


async def test_login_persists_and_sets_token(storage):
    api = AuthApi()
    session = SessionStore(storage, api, admin_emails=["Admin@Shop.com"])
    await session.login("asha@example.com", "pw")

    assert session.is_authenticated
    assert api.token == "tok-1"
    assert not session.is_admin

    restored = SessionStore(storage, AuthApi()).load()
    assert restored.user["email"] == "asha@example.com"
    assert restored.api.token == "tok-1"


async def test_admin_by_email(storage):
    session = SessionStore(storage, AuthApi(), admin_emails=["admin@shop.com"])
    await session.login("ADMIN@shop.com", "pw")
    assert session.is_admin


async def test_logout_clears_slot(storage):
    session = SessionStore(storage, AuthApi())
    await session.signup("Ravi", "ravi@example.com", "pw")
    session.logout()
    assert not session.is_authenticated
    assert storage.load() is None


async def test_address_book(storage):
    api = AuthApi()
    session = SessionStore(storage, api)
    await session.login("asha@example.com", "pw")

    await session.add_address(HOME)
    office = Address("Asha Rao", "9876543210", "1 IT Park", "", "Pune", "MH", "411057")
    await session.add_address(office)
    assert [a.zip_code for a in session.addresses] == ["411001", "411057"]
    assert api.saved_addresses[0]["addressLine2"] == "Flat 4"

    await session.remove_address(0)
    assert session.addresses == [office]
    assert SessionStore(storage, AuthApi()).load().addresses == [office]

    with pytest.raises(IndexError):
        await session.update_address(5, HOME)


async def test_invalid_address_not_sent(storage):
    api = AuthApi()
    session = SessionStore(storage, api)
    await session.login("asha@example.com", "pw")
    with pytest.raises(ValueError):
        await session.add_address(Address(full_name="Asha"))
    assert api.saved_addresses is None
