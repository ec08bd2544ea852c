"""Configuration for the Zoho Books MCP server.

Settings are read once from the environment (and an optional ``.env`` file)
into an immutable object that is handed to the client at construction.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_ACCOUNTS_URL = "https://accounts.zoho.com"
DEFAULT_APP_ORIGIN = "https://localhost:8080"
DEFAULT_INTEGRATIONS_TABLE = "zoho_books_integrations"
ZOHO_SCOPE = "ZohoBooks.fullaccess.ALL"
CALLBACK_PATH = "/books/callback"


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration.

    Args:
        supabase_url: Base URL of the Supabase project.
        supabase_anon_key: Public anon key sent as the ``apikey`` header.
        zoho_client_id: Zoho OAuth client ID (the secret stays server-side).
        zoho_redirect_uri: Explicit OAuth redirect URI, if configured.
        app_origin: Origin used to derive the redirect URI otherwise.
        zoho_accounts_url: Zoho accounts server for the authorization URL.
        organization_id: Optional fixed Zoho Books organization ID.
        integrations_table: Table holding the Integration Records.
        timeout: Request timeout in seconds for Supabase calls.
    """

    supabase_url: str
    supabase_anon_key: str
    zoho_client_id: str = ""
    zoho_redirect_uri: str | None = None
    app_origin: str = DEFAULT_APP_ORIGIN
    zoho_accounts_url: str = DEFAULT_ACCOUNTS_URL
    organization_id: str | None = None
    integrations_table: str = DEFAULT_INTEGRATIONS_TABLE
    timeout: float = 30.0

    @property
    def redirect_uri(self) -> str:
        """OAuth redirect URI: the configured one, or derived from the origin."""
        if self.zoho_redirect_uri:
            return self.zoho_redirect_uri
        return f"{self.app_origin.rstrip('/')}{CALLBACK_PATH}"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Returns:
            Settings instance.

        Raises:
            ValueError: If SUPABASE_URL or SUPABASE_ANON_KEY is missing.
        """
        load_dotenv()

        supabase_url = os.getenv("SUPABASE_URL", "")
        supabase_anon_key = os.getenv("SUPABASE_ANON_KEY", "")
        if not supabase_url or not supabase_anon_key:
            raise ValueError(
                "Missing SUPABASE_URL or SUPABASE_ANON_KEY. "
                "Please set them in .env file."
            )

        return cls(
            supabase_url=supabase_url.rstrip("/"),
            supabase_anon_key=supabase_anon_key,
            zoho_client_id=os.getenv("ZOHO_CLIENT_ID", ""),
            zoho_redirect_uri=os.getenv("ZOHO_REDIRECT_URI") or None,
            app_origin=os.getenv("APP_ORIGIN", DEFAULT_APP_ORIGIN),
            zoho_accounts_url=os.getenv("ZOHO_ACCOUNTS_URL", DEFAULT_ACCOUNTS_URL),
            organization_id=os.getenv("ZOHO_ORGANIZATION_ID") or None,
            integrations_table=os.getenv(
                "ZOHO_INTEGRATIONS_TABLE", DEFAULT_INTEGRATIONS_TABLE
            ),
        )
