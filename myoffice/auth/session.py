"""Delegated MSAL session with a persistent file-based token cache.

Device code flow is only ever started by ``acquire_interactive`` (the login
command). ``get_access_token`` renews silently from the cached refresh token
and fails fast otherwise, because it also runs inside headless processes
where waiting on a human would hang the caller.
"""

import asyncio
from typing import Any, Optional

import msal

from myoffice.auth.models import CredentialRecord, DeviceCodeInfo, DeviceCodePresenter
from myoffice.auth.token_store import FileTokenStore, PersistentStore
from myoffice.config import AuthSettings, load_auth_settings
from myoffice.errors import (
    ConfigurationError,
    DeviceCodeExpired,
    NotAuthenticated,
    ProviderError,
    ReauthenticationRequired,
)
from myoffice.utils.logger import get_logger

logger = get_logger("myoffice.auth.session")

# Device-flow outcomes that mean the user ran out of time. msal stops polling
# locally at expires_at and hands back the last "authorization_pending".
_EXPIRED_ERRORS = {"expired_token", "code_expired", "authorization_pending"}


def _log_device_code(info: DeviceCodeInfo) -> None:
    """Fallback presenter when the host did not inject one."""
    logger.warning("session.device_code", message=info.message)


def _error_message(result: dict[str, Any] | None, default: str) -> str:
    if not result:
        return default
    return result.get("error_description") or result.get("error") or default


class SessionManager:
    """Owns the MSAL client, the in-memory token cache and its disk store.

    Construct one per process (see ``get_session_manager``) and pass it to
    whatever needs tokens. A settings change means building a new manager.
    """

    def __init__(
        self,
        settings: AuthSettings,
        store: Optional[PersistentStore] = None,
        present_device_code: Optional[DeviceCodePresenter] = None,
        cache: Any = None,
        app: Any = None,
    ):
        self._settings = settings
        self._store = store or FileTokenStore(settings.cache_path)
        self._present = present_device_code or _log_device_code
        self._cache = cache if cache is not None else msal.SerializableTokenCache()
        self._app = app
        # Single-flight guard for hydrate -> provider call -> persist
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> AuthSettings:
        return self._settings

    def _client(self) -> Any:
        """Build the MSAL public client on first use (authority discovery hits the network)."""
        if self._app is None:
            if not self._settings.client_id:
                raise ConfigurationError("No client ID configured")
            self._app = msal.PublicClientApplication(
                client_id=self._settings.client_id,
                authority=self._settings.authority,
                token_cache=self._cache,
            )
        return self._app

    async def _ensure_client(self) -> Any:
        if self._app is not None:
            return self._app
        if not self._settings.client_id:
            raise ConfigurationError("No client ID configured")
        try:
            return await asyncio.to_thread(self._client)
        except Exception as e:
            raise ProviderError(f"Failed to initialise MSAL client: {e}") from e

    async def _before_access(self) -> None:
        """Hydrate the in-memory cache from disk. The file is the source of truth."""
        blob = await self._store.load()
        try:
            self._cache.deserialize(blob or "")
        except (ValueError, TypeError, AttributeError) as e:
            # Unparseable cache file counts as no cache at all
            logger.warning("session.cache_corrupt", error=str(e))
            self._cache.deserialize("")

    async def _after_access(self, raise_on_error: bool = False) -> None:
        """Write the cache back if the last provider call changed it.

        A failed write is logged, and raised as ProviderError when raise_on_error is set.
        """
        if not self._cache.has_state_changed:
            return
        blob = self._cache.serialize()
        try:
            written = await self._store.save_if_changed(blob)
        except OSError as e:
            logger.error("session.cache_save_error", error=str(e))
            if raise_on_error:
                raise ProviderError(f"Failed to save token cache: {e}") from e
            return
        if written:
            logger.debug("session.cache_saved")

    def _first_account(self) -> Optional[dict[str, Any]]:
        """First account in the cache is authoritative; multi-account is not supported."""
        accounts = self._cache.find(msal.TokenCache.CredentialType.ACCOUNT)
        return accounts[0] if accounts else None

    async def acquire_interactive(self) -> CredentialRecord:
        """Run the device code flow and persist the resulting token cache.

        Blocks until the user finishes sign-in on another device or the code
        expires. Nothing is written unless sign-in succeeds.
        """
        async with self._lock:
            await self._before_access()
            app = await self._ensure_client()
            try:
                flow = await asyncio.to_thread(app.initiate_device_flow, scopes=self._settings.scopes)
            except Exception as e:
                raise ProviderError(f"Failed to start device code flow: {e}") from e
            if "user_code" not in flow:
                raise ProviderError(
                    _error_message(flow, "Failed to create device flow"),
                    error_code=flow.get("error"),
                )

            info = DeviceCodeInfo.from_flow(flow)
            logger.info("session.device_code.issued", expires_in=info.expires_in_seconds)
            self._present(info)

            try:
                result = await asyncio.to_thread(app.acquire_token_by_device_flow, flow)
            except Exception as e:
                await self._before_access()
                raise ProviderError(f"Device code sign-in failed: {e}") from e

            if not result or "access_token" not in result:
                # Drop anything MSAL may have half-written into memory
                await self._before_access()
                error_code = (result or {}).get("error")
                message = _error_message(result, "Device flow failed")
                logger.warning("session.device_code.failed", error=error_code)
                if error_code in _EXPIRED_ERRORS:
                    raise DeviceCodeExpired(message)
                raise ProviderError(message, error_code=error_code)

            try:
                await self._after_access(raise_on_error=True)
            except ProviderError:
                await self._before_access()
                raise
            account = self._first_account()
            if account is None:
                claims = result.get("id_token_claims") or {}
                account = {"username": claims.get("preferred_username"), "realm": claims.get("tid")}
            record = CredentialRecord.from_account(account, cache_blob=self._cache.serialize())
            logger.info("session.login.ok", username=record.username)
            return record

    async def get_access_token(self) -> str:
        """Return a valid access token, renewing silently if needed.

        Raises NotAuthenticated when nothing is cached and
        ReauthenticationRequired when the refresh token is rejected. Never
        starts an interactive flow.
        """
        async with self._lock:
            await self._before_access()
            account = self._first_account()
            if account is None:
                logger.info("session.token.not_authenticated")
                raise NotAuthenticated()

            app = await self._ensure_client()
            try:
                result = await asyncio.to_thread(
                    app.acquire_token_silent_with_error,
                    self._settings.scopes,
                    account=account,
                )
            except Exception as e:
                await self._before_access()
                raise ReauthenticationRequired(f"Token refresh failed: {e}") from e

            if not result or "access_token" not in result:
                # Leave disk untouched; reload so memory matches it again
                await self._before_access()
                message = _error_message(result, "No cached refresh token for account")
                logger.warning(
                    "session.token.refresh_failed",
                    error=(result or {}).get("error"),
                    username=account.get("username"),
                )
                raise ReauthenticationRequired(
                    f"Token refresh failed: {message}",
                    error_code=(result or {}).get("error"),
                )

            await self._after_access()
            logger.debug("session.token.ok", source=result.get("token_source"))
            return result["access_token"]

    async def is_authenticated(self) -> bool:
        """True iff the cache resolves an account. Does not check expiry."""
        return (await self._account_snapshot()) is not None

    async def current_account_label(self) -> Optional[str]:
        """Username of the active account, for diagnostics."""
        account = await self._account_snapshot()
        return account.get("username") if account else None

    async def _account_snapshot(self) -> Optional[dict[str, Any]]:
        async with self._lock:
            await self._before_access()
            return self._first_account()

    async def logout(self) -> bool:
        """Operator action: forget the cached credential on disk and in memory."""
        async with self._lock:
            removed = await self._store.clear()
            self._cache.deserialize("")
            logger.info("session.logout", removed=removed)
            return removed


def get_session_manager(
    settings: Optional[AuthSettings] = None,
    present_device_code: Optional[DeviceCodePresenter] = None,
) -> SessionManager:
    """Build a SessionManager with the file-backed cache at settings.cache_path."""
    settings = settings or load_auth_settings()
    return SessionManager(
        settings=settings,
        store=FileTokenStore(settings.cache_path),
        present_device_code=present_device_code,
    )
