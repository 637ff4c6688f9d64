"""Configuration and settings."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

# Paths (per-user; override the directory with MYOFFICE_CONFIG_DIR)
CONFIG_DIR = Path(os.getenv("MYOFFICE_CONFIG_DIR", "") or Path.home() / ".config" / "myoffice")
CONFIG_FILE = CONFIG_DIR / "config.json"
MSAL_CACHE_FILE = CONFIG_DIR / "msal-cache.json"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"
# Empty string disables the JSONL file handler
LOG_FILE = os.getenv("MYOFFICE_LOG_FILE", str(CONFIG_DIR / "logs" / "myoffice.jsonl"))

# Microsoft identity platform
AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_TENANT_ID = "common"

# Microsoft Graph
GRAPH_BASE_URL = os.getenv("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0").rstrip("/")
GRAPH_TIMEOUT_SECONDS = float(os.getenv("GRAPH_TIMEOUT_SECONDS", "30"))
CONNECTIVITY_TIMEOUT_SECONDS = 10.0

# Delegated scopes. offline_access is reserved in MSAL Python and always requested.
DELEGATED_SCOPES = [
    "https://graph.microsoft.com/Mail.ReadWrite",
    "https://graph.microsoft.com/Mail.Send",
    "https://graph.microsoft.com/Calendars.ReadWrite",
    "https://graph.microsoft.com/Tasks.ReadWrite",
    "https://graph.microsoft.com/Files.ReadWrite",
    "https://graph.microsoft.com/Sites.ReadWrite.All",
    "https://graph.microsoft.com/Contacts.ReadWrite",
    "https://graph.microsoft.com/User.Read",
    # Teams
    "https://graph.microsoft.com/Team.ReadBasic.All",
    "https://graph.microsoft.com/Channel.ReadBasic.All",
    "https://graph.microsoft.com/ChannelMessage.Read.All",
    "https://graph.microsoft.com/ChannelMessage.Send",
    # Chats
    "https://graph.microsoft.com/Chat.Create",
    "https://graph.microsoft.com/Chat.ReadBasic",
    "https://graph.microsoft.com/Chat.Read",
    "https://graph.microsoft.com/ChatMessage.Send",
    # Planner
    "https://graph.microsoft.com/Group.Read.All",
    "https://graph.microsoft.com/User.ReadBasic.All",
]


class AuthSettings(BaseModel):
    """Resolved app registration used to build the MSAL client."""

    client_id: str = ""
    tenant_id: str = DEFAULT_TENANT_ID
    scopes: list[str] = DELEGATED_SCOPES
    cache_path: Path = MSAL_CACHE_FILE

    @property
    def authority(self) -> str:
        return f"{AUTHORITY_HOST}/{self.tenant_id}"


def get_stored_config(path: Path | None = None) -> dict:
    """Read config.json. Missing or unreadable file yields an empty dict."""
    path = path or CONFIG_FILE
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return data
    except (OSError, ValueError):
        pass
    return {}


def save_stored_config(
    client_id: str | None = None,
    tenant_id: str | None = None,
    path: Path | None = None,
) -> dict:
    """Merge the given values into config.json (owner read/write only)."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    merged = get_stored_config(path)
    if client_id:
        merged["clientId"] = client_id
    if tenant_id:
        merged["tenantId"] = tenant_id
    path.write_text(json.dumps(merged, indent=2), encoding="utf-8")
    path.chmod(0o600)
    return merged


def load_auth_settings(config_path: Path | None = None) -> AuthSettings:
    """Environment variables take precedence over config.json; tenant defaults to 'common'."""
    stored = get_stored_config(config_path)
    client_id = os.getenv("M365_CLIENT_ID") or stored.get("clientId") or ""
    tenant_id = os.getenv("M365_TENANT_ID") or stored.get("tenantId") or DEFAULT_TENANT_ID
    return AuthSettings(client_id=client_id, tenant_id=tenant_id)
