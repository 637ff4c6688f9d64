"""Pydantic models for device-code prompts and persisted credentials."""

from typing import Any, Callable, Optional

from pydantic import BaseModel


class DeviceCodeInfo(BaseModel):
    """What the user needs to complete device-code sign-in on another device."""

    verification_url: str
    user_code: str
    message: str
    expires_in_seconds: int = 0

    @classmethod
    def from_flow(cls, flow: dict[str, Any]) -> "DeviceCodeInfo":
        """Build from the dict returned by msal initiate_device_flow."""
        return cls(
            verification_url=flow.get("verification_uri") or flow.get("verification_url") or "",
            user_code=flow.get("user_code", ""),
            message=flow.get("message", ""),
            expires_in_seconds=int(flow.get("expires_in") or 0),
        )


DeviceCodePresenter = Callable[[DeviceCodeInfo], None]


class CredentialRecord(BaseModel):
    """Signed-in identity plus the opaque serialized token cache it lives in."""

    account_identifier: str
    username: Optional[str] = None
    cache_blob: str = ""

    @classmethod
    def from_account(cls, account: dict[str, Any], cache_blob: str = "") -> "CredentialRecord":
        """Build from an msal account dict (home_account_id, realm, environment, username)."""
        parts = [
            account.get("home_account_id") or "",
            account.get("realm") or "",
            account.get("environment") or "",
            account.get("username") or "",
        ]
        return cls(
            account_identifier="|".join(parts),
            username=account.get("username"),
            cache_blob=cache_blob,
        )
