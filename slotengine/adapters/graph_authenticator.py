"""
Microsoft identity platform sign-in for calendar access, using MSAL.
"""

import logging
from pathlib import Path

import msal
from rich.console import Console

from ..domain.exceptions import AuthenticationError
from .calendar_adapter import CalendarCredentials

logger = logging.getLogger(__name__)
console = Console()


class GraphAuthenticator:
    """
    Obtains Microsoft Graph credentials for a provider's Outlook calendar.

    Tokens come from the on-disk MSAL cache when possible; otherwise the
    device code flow is run and the user signs in from a browser.
    """

    # Read for conflict checks and imports, write for exporting bookings
    SCOPES = ["Calendars.ReadWrite"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        cache_file: Path | None = None,
        authority_url: str | None = None
    ):
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"
        self.cache_file = cache_file or Path.home() / ".slotengine_token_cache.json"
        self.cache = self._load_cache()

        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )

    def _load_cache(self) -> msal.SerializableTokenCache:
        cache = msal.SerializableTokenCache()

        if self.cache_file.exists():
            try:
                cache.deserialize(self.cache_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Could not load token cache %s: %s", self.cache_file, e)

        return cache

    def _save_cache(self) -> None:
        if not self.cache.has_state_changed:
            return

        try:
            self.cache_file.write_text(self.cache.serialize(), encoding="utf-8")
            # Owner only
            self.cache_file.chmod(0o600)
        except OSError as e:
            logger.warning("Could not save token cache %s: %s", self.cache_file, e)

    def get_credentials(self, force_refresh: bool = False) -> CalendarCredentials:
        """
        Return credentials for the Microsoft calendar adapter.

        Args:
            force_refresh: Skip the cache and sign in again

        Raises:
            AuthenticationError: If sign-in fails
        """
        if not force_refresh:
            accounts = self.app.get_accounts()
            if accounts:
                result = self.app.acquire_token_silent(scopes=self.SCOPES, account=accounts[0])
                if result and "access_token" in result:
                    self._save_cache()
                    return CalendarCredentials(access_token=result["access_token"])

        return CalendarCredentials(access_token=self._device_code_flow())

    def _device_code_flow(self) -> str:
        flow = self.app.initiate_device_flow(scopes=self.SCOPES)

        if "user_code" not in flow:
            raise AuthenticationError(
                f"Failed to initiate device flow: {flow.get('error_description', 'Unknown error')}"
            )

        console.print("\n[bold cyan]Microsoft sign-in required[/bold cyan]")
        console.print(f"1. Open [bold cyan]{flow['verification_uri']}[/bold cyan]")
        console.print(f"2. Enter the code [bold yellow]{flow['user_code']}[/bold yellow]")
        console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            raise AuthenticationError(
                f"Authentication failed: {result.get('error_description', 'Unknown error')}"
            )

        logger.info("Microsoft sign-in completed for tenant %s", self.tenant_id)
        self._save_cache()
        return result["access_token"]

    def clear_cache(self) -> None:
        """Forget cached tokens so the next call signs in again."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        self.cache = msal.SerializableTokenCache()
        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )
