"""In-memory provider and end-user directory."""

import logging
import threading
from typing import Optional

from slotbook.errors import NotFoundError
from slotbook.schemas.directory_schema import EndUser, Provider

logger = logging.getLogger(__name__)


class Directory:
    """Lookup of providers and end users by id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._providers: dict[str, Provider] = {}
        self._users: dict[str, EndUser] = {}

    def add_provider(self, provider: Provider) -> Provider:
        with self._lock:
            self._providers[provider.provider_id] = provider.model_copy(deep=True)
        logger.debug("Provider registered: %s", provider.provider_id)
        return provider

    def save_provider(self, provider: Provider) -> Provider:
        with self._lock:
            if provider.provider_id not in self._providers:
                raise NotFoundError("Provider", provider.provider_id)
            self._providers[provider.provider_id] = provider.model_copy(deep=True)
        return provider

    def get_provider(self, provider_id: str) -> Provider:
        with self._lock:
            provider = self._providers.get(provider_id)
        if provider is None:
            raise NotFoundError("Provider", provider_id)
        return provider.model_copy(deep=True)

    def provider_for_user(self, user_id: str) -> Optional[Provider]:
        """Return the provider profile owned by a provider-role user, if any."""
        with self._lock:
            for provider in self._providers.values():
                if provider.user_id == user_id:
                    return provider.model_copy(deep=True)
        return None

    def add_user(self, user: EndUser) -> EndUser:
        with self._lock:
            self._users[user.user_id] = user.model_copy(deep=True)
        return user

    def get_user(self, user_id: str) -> EndUser:
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user.model_copy(deep=True)
