# session.py
import logging

from errors import PersistenceError
from models import Address

logger = logging.getLogger("storefront.session")


class SessionStore:
    """Logged-in user, token and saved addresses, persisted in their own slot."""
    def __init__(self, storage, api, admin_emails=()):
        self.storage = storage
        self.api = api
        self.admin_emails = {e.lower() for e in admin_emails}
        self.token = None
        self.user = None

    def load(self):
        try:
            record = self.storage.load()
        except PersistenceError as e:
            logger.warning(f"Could not load saved session: {e}")
            record = None
        if record and record.get('token') and record.get('user'):
            self.token = record['token']
            self.user = record['user']
            self.api.token = self.token
        return self

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and (self.user or {}).get('email', '').lower() in self.admin_emails

    @property
    def addresses(self):
        return [Address.from_api(a) for a in (self.user or {}).get('addresses') or []]

    def _persist(self):
        try:
            if self.token:
                self.storage.save({'token': self.token, 'user': self.user})
            else:
                self.storage.clear()
        except PersistenceError as e:
            logger.warning(f"Session change kept in memory only: {e}")

    def _start(self, data: dict):
        self.token = data['token']
        self.user = data
        self.api.token = self.token
        self._persist()
        logger.info(f"Signed in as {data.get('email')}")
        return data

    async def login(self, email: str, password: str):
        return self._start(await self.api.login(email, password))

    async def signup(self, name: str, email: str, password: str):
        return self._start(await self.api.signup(name, email, password))

    def logout(self):
        self.token = None
        self.user = None
        self.api.token = None
        self._persist()

    def update_user(self, data: dict):
        self.user = {**(self.user or {}), **data}
        self._persist()

    async def _save_addresses(self, addresses):
        updated = await self.api.update_addresses([a.to_api() for a in addresses])
        self.update_user({'addresses': (updated or {}).get('addresses', [a.to_api() for a in addresses])})
        return self.addresses

    async def add_address(self, address: Address):
        address.validate()
        return await self._save_addresses(self.addresses + [address])

    async def update_address(self, index: int, address: Address):
        address.validate()
        addresses = self.addresses
        if not 0 <= index < len(addresses):
            raise IndexError(f"No saved address at position {index}")
        addresses[index] = address
        return await self._save_addresses(addresses)

    async def remove_address(self, index: int):
        addresses = self.addresses
        if not 0 <= index < len(addresses):
            raise IndexError(f"No saved address at position {index}")
        del addresses[index]
        return await self._save_addresses(addresses)
