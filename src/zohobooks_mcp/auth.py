"""Zoho Books OAuth connect flow and account CLI.

This module builds the Zoho authorization URL, receives the OAuth callback
on a local server, verifies the anti-CSRF state and hands the code to the
``zoho-oauth-exchange`` edge function, which stores the tokens server-side.

Run with: python -m zohobooks_mcp.auth {login,connect,status,disconnect}
"""

import argparse
import asyncio
import getpass
import ipaddress
import json
import logging
import secrets
import ssl
import webbrowser
from datetime import datetime, timedelta, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from threading import Thread
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from zohobooks_mcp.client import ZohoBooksClient
from zohobooks_mcp.config import ZOHO_SCOPE, Settings
from zohobooks_mcp.exceptions import AuthenticationError
from zohobooks_mcp.session import DEFAULT_STORAGE_DIR, SessionManager
from zohobooks_mcp.supabase import SupabaseClient

logger = logging.getLogger(__name__)

EXCHANGE_FUNCTION = "zoho-oauth-exchange"
CALLBACK_TIMEOUT = 120  # seconds


def generate_state() -> str:
    """Random anti-CSRF state for the authorization request."""
    return secrets.token_urlsafe(32)


def build_authorization_url(
    settings: Settings,
    state: str | None = None,
) -> tuple[str, str]:
    """Generate the Zoho OAuth authorization URL.

    Args:
        settings: Runtime configuration.
        state: Optional state parameter; generated when omitted.

    Returns:
        Tuple of (authorization_url, state).

    Raises:
        ValueError: If ZOHO_CLIENT_ID is not configured.
    """
    if not settings.zoho_client_id:
        raise ValueError(
            "Zoho Books Client ID not configured. Check ZOHO_CLIENT_ID."
        )
    if state is None:
        state = generate_state()

    params = {
        "client_id": settings.zoho_client_id,
        "redirect_uri": settings.redirect_uri,
        "response_type": "code",
        "access_type": "offline",
        "scope": ZOHO_SCOPE,
        "state": state,
    }
    url = f"{settings.zoho_accounts_url.rstrip('/')}/oauth/v2/auth?{urlencode(params)}"
    return url, state


def verify_state(expected: str, received: str | None) -> None:
    """Check the callback state against the one sent.

    Raises:
        AuthenticationError: If the state is missing or differs.
    """
    if not received or not secrets.compare_digest(expected.encode(), received.encode()):
        raise AuthenticationError(
            "State mismatch - possible CSRF attack",
            action="Run the connect flow again",
        )


async def exchange_code(
    supabase: SupabaseClient,
    user_id: str,
    code: str,
    redirect_uri: str,
) -> str | None:
    """Hand the authorization code to the exchange edge function.

    Returns:
        The organization id reported by the function, if any.

    Raises:
        AuthenticationError: If the exchange fails.
    """
    result = await supabase.invoke_function(
        EXCHANGE_FUNCTION,
        {"code": code, "userId": user_id, "redirectUri": redirect_uri},
    )
    if not result.get("success"):
        reason = result.get("error") or "Failed to exchange authorization code"
        logger.error(f"Code exchange failed: {reason}")
        raise AuthenticationError(str(reason), action="Run the connect flow again")
    return result.get("organizationId")


def get_or_create_ssl_cert(storage_dir: Path | None = None) -> tuple[Path, Path]:
    """Get or create a self-signed SSL certificate for localhost.

    Args:
        storage_dir: Directory to store certificate files.

    Returns:
        Tuple of (cert_path, key_path).
    """
    storage_dir = storage_dir or DEFAULT_STORAGE_DIR
    storage_dir.mkdir(parents=True, exist_ok=True)

    cert_path = storage_dir / "localhost.crt"
    key_path = storage_dir / "localhost.key"

    # Reuse the existing certificate while still valid
    if cert_path.exists() and key_path.exists():
        try:
            cert = x509.load_pem_x509_certificate(cert_path.read_bytes())
            if cert.not_valid_after_utc > datetime.now(timezone.utc):
                return cert_path, key_path
        except ValueError:
            logger.info("Existing certificate unreadable, regenerating")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "zohobooks-mcp"),
        x509.NameAttribute(NameOID.COMMON_NAME, "localhost"),
    ])
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=365))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.IPv4Address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    key_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    key_path.chmod(0o600)
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))

    logger.info(f"Generated self-signed certificate at {cert_path}")
    return cert_path, key_path


class CallbackHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the Zoho OAuth callback."""

    callback_path = "/books/callback"
    authorization_code: str | None = None
    state: str | None = None
    error: str | None = None

    @classmethod
    def reset(cls, callback_path: str) -> None:
        """Clear results from a previous flow."""
        cls.callback_path = callback_path
        cls.authorization_code = None
        cls.state = None
        cls.error = None

    def log_message(self, format: str, *args: Any) -> None:
        """Suppress HTTP server logging."""

    def do_GET(self) -> None:
        """Handle GET request from the OAuth callback."""
        parsed = urlparse(self.path)

        if parsed.path != self.callback_path:
            self.send_error(404)
            return

        params = parse_qs(parsed.query)

        if "error" in params:
            CallbackHandler.error = params["error"][0]
            self._send_response("Connection failed. You can close this window.")
            return

        if "code" not in params:
            self._send_response("Missing authorization code. Please try again.")
            return

        CallbackHandler.authorization_code = params["code"][0]
        CallbackHandler.state = params.get("state", [None])[0]
        self._send_response(
            "Zoho Books connected! You can close this window and return to the terminal."
        )

    def _send_response(self, message: str) -> None:
        """Send HTML response to browser."""
        self.send_response(200)
        self.send_header("Content-type", "text/html")
        self.end_headers()

        html = f"""
        <!DOCTYPE html>
        <html>
        <head><title>Zoho Books Connection</title></head>
        <body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
            <h1>{message}</h1>
        </body>
        </html>
        """
        self.wfile.write(html.encode())


async def run_connect_flow(settings: Settings, session: SessionManager) -> str | None:
    """Run the interactive Zoho Books connect flow.

    This function:
    1. Starts a local server on the redirect URI's host and port
    2. Opens the browser to the Zoho consent page
    3. Waits for the callback and verifies its state
    4. Hands the code to the exchange edge function

    Returns:
        The organization id reported by the exchange, if any.

    Raises:
        AuthenticationError: If the callback fails or is rejected.
    """
    backend_session = await session.get_valid_session()
    auth_url, expected_state = build_authorization_url(settings)

    redirect = urlparse(settings.redirect_uri)
    is_https = redirect.scheme == "https"
    is_localhost = redirect.hostname in ("localhost", "127.0.0.1")
    port = redirect.port or (443 if is_https else 80)

    CallbackHandler.reset(redirect.path or "/")
    server = HTTPServer(("localhost", port), CallbackHandler)

    if is_localhost and is_https:
        cert_path, key_path = get_or_create_ssl_cert()
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(certfile=cert_path, keyfile=key_path)
        server.socket = ssl_context.wrap_socket(server.socket, server_side=True)

    server_thread = Thread(target=server.handle_request, daemon=True)
    server_thread.start()

    print("\nOpening browser to connect Zoho Books...")
    print(f"If the browser doesn't open, visit: {auth_url}")
    if is_localhost and is_https:
        print("\nNote: Your browser may show a security warning for the self-signed")
        print("certificate. Click 'Advanced' and 'Proceed to localhost' to continue.")
    print("")
    webbrowser.open(auth_url)

    print("Waiting for authorization...")
    server_thread.join(timeout=CALLBACK_TIMEOUT)
    server.server_close()

    if CallbackHandler.error:
        raise AuthenticationError(f"OAuth error: {CallbackHandler.error}")
    if CallbackHandler.authorization_code is None:
        raise AuthenticationError("Authorization timeout or cancelled")
    verify_state(expected_state, CallbackHandler.state)

    print("Exchanging authorization code...")
    supabase = SupabaseClient(settings, token_provider=session.access_token)
    try:
        return await exchange_code(
            supabase,
            backend_session.user_id,
            CallbackHandler.authorization_code,
            settings.redirect_uri,
        )
    finally:
        await supabase.close()


async def _login(settings: Settings, session: SessionManager) -> None:
    email = input("Email: ").strip()
    password = getpass.getpass("Password: ")
    await session.sign_in(email, password)
    print("\nSigned in. Session stored securely.")


async def _connect(settings: Settings, session: SessionManager) -> None:
    organization_id = await run_connect_flow(settings, session)
    print("\nZoho Books connected!")
    if organization_id:
        print(f"Organization: {organization_id}")


async def _status(settings: Settings, session: SessionManager) -> None:
    client = ZohoBooksClient(settings, session=session)
    try:
        status = await client.get_status()
    finally:
        await client.close()
    print(json.dumps(status.to_dict(), indent=2))


async def _disconnect(settings: Settings, session: SessionManager) -> None:
    client = ZohoBooksClient(settings, session=session)
    try:
        await client.disconnect()
    finally:
        await client.close()
    print("Zoho Books disconnected.")


async def _logout(settings: Settings, session: SessionManager) -> None:
    await session.sign_out()
    print("Signed out.")


COMMANDS = {
    "login": (_login, "Sign in to the backend and store the session"),
    "connect": (_connect, "Connect Zoho Books through the OAuth consent page"),
    "status": (_status, "Show the Zoho Books connection status"),
    "disconnect": (_disconnect, "Disconnect Zoho Books and clear its tokens"),
    "logout": (_logout, "Forget the stored backend session"),
}


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the account CLI."""
    parser = argparse.ArgumentParser(
        prog="zohobooks-auth",
        description="Manage the backend session and the Zoho Books connection.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, (_, help_text) in COMMANDS.items():
        subparsers.add_parser(name, help=help_text)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for authentication commands."""
    args = build_parser().parse_args(argv)
    command, _ = COMMANDS[args.command]

    try:
        settings = Settings.from_env()
        asyncio.run(command(settings, SessionManager(settings)))
    except KeyboardInterrupt:
        print("\nCancelled.")
    except Exception as e:
        print(f"\nError: {e}")
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
