"""Resolution of the generation-service API key used for a scene's owner."""

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from scene_engine.config import settings
from scene_engine.db.models import UserProfileModel
from scene_engine.db.session import get_session_context
from scene_engine.logging import get_logger
from scene_engine.services.encryption import EncryptionError, decrypt_api_key

logger = get_logger(__name__)


class ApiKeyResolver(ABC):
    """Picks the API key sent to the generation service on behalf of a user."""

    @abstractmethod
    def resolve(self, user_id: UUID) -> str | None:
        """Return the key to use, or None to let the provider use its default."""
        ...


class GlobalApiKeyResolver(ApiKeyResolver):
    """Every user shares the service-wide key."""

    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.luma_api_key

    def resolve(self, user_id: UUID) -> str | None:
        return self.api_key


class ProfileApiKeyResolver(ApiKeyResolver):
    """Per-user keys stored encrypted on the profile, with a global fallback."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        fallback: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.fallback = fallback if fallback is not None else settings.luma_api_key

    def resolve(self, user_id: UUID) -> str | None:
        with get_session_context(self.session_factory) as session:
            profile = session.get(UserProfileModel, user_id)
            encrypted_key = profile.encrypted_api_key if profile else None

        if not encrypted_key:
            return self.fallback

        try:
            return decrypt_api_key(encrypted_key)
        except EncryptionError as e:
            logger.error("profile_api_key_decrypt_failed", user_id=str(user_id), error=str(e))
            return self.fallback
