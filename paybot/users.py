"""Registered bot users and their merchant API keys.

Users are declared in settings.yaml under ``users``. The directory
answers the two identity questions the dispatch core asks: may this
actor run commands, and which merchant API key acts on their behalf.

Key classes:
    UserRecord: Pydantic model of one registered user.
    UserDirectory: Authorizer backed by a list of UserRecords.
"""

from typing import Dict, Iterable, List, Optional

import structlog
from pydantic import BaseModel, ValidationError, field_validator

from .events import Actor

logger = structlog.get_logger("paybot.security")


class UserRecord(BaseModel):
    """A Telegram user allowed to query payments.

    Attributes:
        telegram_id: Telegram user id (stored as string).
        username: Optional Telegram username, informational only.
        api_key: Merchant API key for the payment API.
        enabled: Disabled users are refused.
    """

    telegram_id: str
    username: Optional[str] = None
    api_key: str
    enabled: bool = True

    @field_validator("telegram_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value)


class UserDirectory:
    """In-memory user lookup implementing the Authorizer protocol.

    Args:
        users: Registered users.
        require_registration: When False every actor is authorized
            (single-merchant deployments).
        default_api_key: Credential used for actors without a record.
    """

    def __init__(
        self,
        users: Iterable[UserRecord] = (),
        require_registration: bool = True,
        default_api_key: Optional[str] = None,
    ):
        self.require_registration = require_registration
        self.default_api_key = default_api_key or None
        self._by_id: Dict[str, UserRecord] = {}
        for user in users:
            if user.telegram_id in self._by_id:
                logger.warning("duplicate_user_record", telegram_id=user.telegram_id)
            self._by_id[user.telegram_id] = user

    @classmethod
    def from_settings(
        cls,
        entries: List[dict],
        require_registration: bool = True,
        default_api_key: Optional[str] = None,
    ) -> "UserDirectory":
        """Build a directory from raw settings entries, skipping invalid ones."""
        users = []
        for index, entry in enumerate(entries or []):
            try:
                users.append(UserRecord.model_validate(entry))
            except ValidationError as e:
                logger.error(
                    "invalid_user_record",
                    index=index,
                    errors=e.error_count(),
                )
        return cls(
            users,
            require_registration=require_registration,
            default_api_key=default_api_key,
        )

    def get(self, telegram_id: str) -> Optional[UserRecord]:
        return self._by_id.get(str(telegram_id))

    def find_by_api_key(self, api_key: str) -> Optional[UserRecord]:
        for user in self._by_id.values():
            if user.api_key == api_key:
                return user
        return None

    def is_authorized(self, actor: Actor) -> bool:
        user = self.get(actor.id)
        if user is not None and not user.enabled:
            logger.warning("disabled_user_access_attempt", actor=actor.id)
            return False
        if not self.require_registration:
            return True
        if user is None:
            logger.warning("unauthorized_access_attempt", actor=actor.id)
            return False
        return True

    def resolve_credential(self, actor: Actor) -> Optional[str]:
        """Merchant key for ``actor``. Disabled users never get one."""
        user = self.get(actor.id)
        if user is None:
            return self.default_api_key
        return user.api_key if user.enabled else None

    def __len__(self) -> int:
        return len(self._by_id)
