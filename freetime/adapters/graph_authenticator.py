"""
Microsoft Graph API authentication using MSAL (Device Code Flow).
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import keyring
import msal
from keyring.errors import KeyringError
from rich.console import Console

from ..domain.exceptions import AuthenticationError
from ..domain.models import AccessResult, AccessStatus

logger = logging.getLogger(__name__)

console = Console()


KEYRING_SERVICE_NAME = "freetime-analyzer"


class GraphAuthenticator:
    """
    Handles authentication with Microsoft Graph API using Device Code Flow.

    The token cache lives in the system keyring and falls back to a
    plaintext file with owner-only permissions when no keyring backend works.
    """

    # Read access is all the analyzer ever needs
    SCOPES = ["Calendars.Read"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        authority_url: str | None = None,
        cache_file: Path | None = None
    ):
        """
        Initialize the authenticator.

        Args:
            client_id: Azure AD application (client) ID
            tenant_id: Azure AD tenant ID
            authority_url: Optional custom authority URL
            cache_file: Optional path to token cache file
        """
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"

        self.cache_file = cache_file or Path.home() / ".freetime_token_cache.json"
        self._key_identifier = f"{self.client_id}:{self.tenant_id}"
        self._keyring_supported = True
        self._cache_backend = "keyring"
        self.cache = self._load_cache()

        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return self._cache_backend

    def _load_cache(self) -> msal.SerializableTokenCache:
        """Load token cache from keyring or disk if it exists."""
        cache = msal.SerializableTokenCache()

        serialized = self._load_cache_from_keyring()
        if serialized is None:
            serialized = self._load_cache_from_file()

        if serialized:
            try:
                cache.deserialize(serialized)
            except ValueError as exc:
                logger.warning("Could not deserialize token cache: %s", exc)

        return cache

    def _load_cache_from_keyring(self) -> Optional[str]:
        if not self._keyring_supported:
            return None

        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"reading credentials failed: {exc}")
            return None

    def _load_cache_from_file(self) -> Optional[str]:
        if self.cache_file.exists():
            try:
                with open(self.cache_file, "r", encoding="utf-8") as file_handle:
                    return file_handle.read()
            except OSError as exc:
                logger.warning("Could not load token cache file %s: %s", self.cache_file, exc)
        return None

    def _save_cache(self) -> None:
        """Save token cache to the configured backend."""
        if not self.cache.has_state_changed:
            return

        serialized = self.cache.serialize()

        if self._keyring_supported and self._save_cache_to_keyring(serialized):
            return

        self._save_cache_to_file(serialized)

    def _save_cache_to_keyring(self, serialized: str) -> bool:
        try:
            keyring.set_password(KEYRING_SERVICE_NAME, self._key_identifier, serialized)
            self._cache_backend = "keyring"
            return True
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"writing credentials failed: {exc}")
            return False

    def _save_cache_to_file(self, serialized: str) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as file_handle:
                file_handle.write(serialized)
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save token cache to %s: %s", self.cache_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext cache at %s.",
                reason,
                self.cache_file,
            )
        self._keyring_supported = False
        self._cache_backend = "file"

    def get_cached_token(self) -> Optional[str]:
        """Return a token from the cache without prompting, or None."""
        accounts = self.app.get_accounts()
        if not accounts:
            return None

        result = self.app.acquire_token_silent(scopes=self.SCOPES, account=accounts[0])
        if result and "access_token" in result:
            self._save_cache()
            return result["access_token"]
        return None

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, using cache or requesting new one.

        Args:
            force_refresh: Force authentication even if cached token exists

        Returns:
            Access token string

        Raises:
            AuthenticationError: If authentication fails
        """
        if not force_refresh:
            token = self.get_cached_token()
            if token:
                return token

        return self._authenticate_device_code_flow()

    def _authenticate_device_code_flow(self) -> str:
        """
        Perform device code flow authentication.

        Raises:
            AuthenticationError: If authentication fails
        """
        console.print("\n[bold cyan]🔐 Microsoft Authentication Required[/bold cyan]")
        console.print("You need to sign in to read your calendars.\n")

        try:
            flow = self.app.initiate_device_flow(scopes=self.SCOPES)
        except Exception as exc:  # pragma: no cover - MSAL internal failure
            raise AuthenticationError(f"Failed to initiate device flow: {exc}") from exc

        if "user_code" not in flow:
            raise AuthenticationError(
                f"Failed to initiate device flow: {flow.get('error_description', 'Unknown error')}"
            )

        console.print("[bold]Please follow these steps:[/bold]")
        console.print(f"1. Open a browser and go to: [bold cyan]{flow['verification_uri']}[/bold cyan]")
        console.print(f"2. Enter this code: [bold yellow]{flow['user_code']}[/bold yellow]")
        console.print("3. Sign in with your Microsoft account")
        console.print("4. Grant read access to your calendars\n")
        console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            error = result.get("error_description", "Unknown error")
            raise AuthenticationError(f"Authentication failed: {error}")

        console.print("[bold green]✓ Authentication successful![/bold green]\n")

        self._save_cache()

        return result["access_token"]

    def clear_cache(self) -> None:
        """Clear the token cache (force re-authentication next time)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            logger.warning("Could not remove credentials from keyring: %s", exc)
        self.cache = msal.SerializableTokenCache()
        console.print("[green]Token cache cleared. You will need to re-authenticate.[/green]")


class GraphAccessProvider:
    """
    Access provider backed by the MSAL token cache.

    The status is unknown until request_access has run. It first tries the
    token cache silently and falls back to the device code flow, both off
    the event loop.
    """

    def __init__(self, authenticator: GraphAuthenticator):
        self._authenticator = authenticator
        self._status = AccessStatus.UNKNOWN

    def authorization_status(self) -> AccessStatus:
        return self._status

    async def request_access(self) -> AccessResult:
        try:
            await asyncio.to_thread(self._authenticator.get_access_token)
        except AuthenticationError as exc:
            logger.warning("Calendar access error: %s", exc)
            self._status = AccessStatus.DENIED
            return AccessResult(status=AccessStatus.DENIED, error_message=str(exc))

        self._status = AccessStatus.GRANTED
        return AccessResult(status=AccessStatus.GRANTED)

    def access_token(self) -> str:
        """Token for API calls; only valid once access was granted."""
        return self._authenticator.get_access_token()
