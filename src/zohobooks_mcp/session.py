"""Backend session storage and renewal.

The Supabase user session authorizes every edge function and table call.
It is stored in the system keyring when available, otherwise in an
encrypted file, and is refreshed automatically shortly before it expires.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import httpx
from cryptography.fernet import Fernet, InvalidToken

from zohobooks_mcp.config import Settings
from zohobooks_mcp.exceptions import AuthenticationError
from zohobooks_mcp.models import BackendSession

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path.home() / ".zohobooks_mcp"


class SessionStorage(ABC):
    """Abstract base class for secure session storage."""

    @abstractmethod
    async def load(self) -> BackendSession | None:
        """Load the stored session.

        Returns:
            BackendSession if found, None otherwise.
        """

    @abstractmethod
    async def save(self, session: BackendSession) -> None:
        """Save the session to storage."""

    @abstractmethod
    async def delete(self) -> None:
        """Delete the stored session."""


class KeyringStorage(SessionStorage):
    """Session storage using the system keyring (macOS Keychain, etc.)."""

    SERVICE_NAME = "zohobooks-mcp"
    ACCOUNT_NAME = "supabase_session"

    async def load(self) -> BackendSession | None:
        import keyring
        from keyring.errors import KeyringError

        try:
            data = keyring.get_password(self.SERVICE_NAME, self.ACCOUNT_NAME)
        except KeyringError as e:
            logger.debug(f"Failed to load from keyring: {e}")
            return None
        if data is None:
            return None

        try:
            return BackendSession.from_dict(json.loads(data))
        except (KeyError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session in keyring: {e}")
            return None

    async def save(self, session: BackendSession) -> None:
        import keyring

        keyring.set_password(
            self.SERVICE_NAME, self.ACCOUNT_NAME, json.dumps(session.to_dict())
        )
        logger.debug("Session saved to keyring")

    async def delete(self) -> None:
        import keyring
        from keyring.errors import PasswordDeleteError

        try:
            keyring.delete_password(self.SERVICE_NAME, self.ACCOUNT_NAME)
            logger.debug("Session deleted from keyring")
        except PasswordDeleteError:
            logger.debug("No session in keyring to delete")


class EncryptedFileStorage(SessionStorage):
    """Fallback session storage using a Fernet-encrypted JSON file."""

    def __init__(self, storage_dir: Path | None = None) -> None:
        """Initialize encrypted file storage.

        Args:
            storage_dir: Directory for session files. Defaults to ~/.zohobooks_mcp/
        """
        self.storage_dir = storage_dir or DEFAULT_STORAGE_DIR
        self.session_file = self.storage_dir / "session.json.enc"
        self.key_file = self.storage_dir / "session.key"

    def _get_or_create_key(self) -> bytes:
        """Get the existing encryption key or create a new one."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        if self.key_file.exists():
            return self.key_file.read_bytes()

        key = Fernet.generate_key()
        self.key_file.write_bytes(key)
        self.key_file.chmod(0o600)
        return key

    async def load(self) -> BackendSession | None:
        if not self.session_file.exists():
            return None

        cipher = Fernet(self._get_or_create_key())
        try:
            decrypted = cipher.decrypt(self.session_file.read_bytes())
            return BackendSession.from_dict(json.loads(decrypted.decode()))
        except (InvalidToken, KeyError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file: {e}")
            return None

    async def save(self, session: BackendSession) -> None:
        cipher = Fernet(self._get_or_create_key())
        data = json.dumps(session.to_dict()).encode()

        self.session_file.write_bytes(cipher.encrypt(data))
        self.session_file.chmod(0o600)
        logger.debug("Session saved to encrypted file")

    async def delete(self) -> None:
        self.session_file.unlink(missing_ok=True)
        logger.debug("Session file deleted")


def get_storage() -> SessionStorage:
    """Get the appropriate session storage backend.

    Tries keyring first, falls back to encrypted file storage.
    """
    try:
        import keyring
        from keyring.errors import KeyringError

        # Test if keyring is functional
        keyring.get_password("zohobooks-mcp-test", "test")
        return KeyringStorage()
    except (ImportError, KeyringError, RuntimeError):
        logger.info("Keyring not available, using encrypted file storage")
        return EncryptedFileStorage()


class SessionManager:
    """Signs in to Supabase and keeps the stored session fresh."""

    def __init__(
        self,
        settings: Settings,
        storage: SessionStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            settings: Runtime configuration.
            storage: Session storage; defaults to get_storage().
            transport: Optional httpx transport (used by tests).
        """
        self.settings = settings
        self.storage = storage or get_storage()
        self._transport = transport
        self._current: BackendSession | None = None

    async def _token_request(self, grant_type: str, body: dict[str, str]) -> BackendSession:
        async with httpx.AsyncClient(
            timeout=self.settings.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    f"{self.settings.supabase_url}/auth/v1/token",
                    params={"grant_type": grant_type},
                    headers={"apikey": self.settings.supabase_anon_key},
                    json=body,
                )
            except httpx.RequestError as e:
                raise AuthenticationError(f"Could not reach Supabase auth: {e}") from e

        if response.status_code != 200:
            logger.error(f"Supabase {grant_type} grant failed: {response.status_code}")
            raise AuthenticationError(
                "Sign-in failed" if grant_type == "password"
                else "Session expired. Please sign in again."
            )

        session = BackendSession.from_auth_response(response.json())
        await self.storage.save(session)
        self._current = session
        return session

    async def sign_in(self, email: str, password: str) -> BackendSession:
        """Sign in with email and password and store the session.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """
        return await self._token_request(
            "password", {"email": email, "password": password}
        )

    async def refresh(self, session: BackendSession) -> BackendSession:
        """Exchange the refresh token for a new session.

        Raises:
            AuthenticationError: If refresh fails.
        """
        return await self._token_request(
            "refresh_token", {"refresh_token": session.refresh_token}
        )

    async def get_valid_session(self) -> BackendSession:
        """Get a valid session, refreshing if necessary.

        Raises:
            AuthenticationError: If no session is stored or refresh fails.
        """
        session = self._current or await self.storage.load()
        if session is None:
            raise AuthenticationError()

        if session.is_expired(buffer_seconds=30):
            logger.debug("Session expired, refreshing...")
            session = await self.refresh(session)

        self._current = session
        return session

    async def access_token(self) -> str:
        """Token provider for SupabaseClient."""
        return (await self.get_valid_session()).access_token

    async def sign_out(self) -> None:
        """Forget the stored session."""
        self._current = None
        await self.storage.delete()
