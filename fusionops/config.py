from __future__ import annotations

import json
import logging
import os
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from fusionops.errors import ClientNotFound, ConfigError
from fusionops.util import to_float, to_int

logger = logging.getLogger(__name__)

DEFAULT_COC_BASE_URL = "https://api.checkoutchamp.com"
DEFAULT_FB_API_VERSION = "v18.0"
DEFAULT_COC_PAGE_SIZE = 200
DEFAULT_SPEND_FLOOR = 25.0
DEFAULT_THRESHOLD_PCT = 15.0
HTTP_TIMEOUT = 45


class AdAccountConfig(BaseModel):
    fbAdAccountId: str
    cocCampaignId: str
    cocCampaignName: str = ""
    cppTarget: float | None = None

    @field_validator("cocCampaignId", mode="before")
    @classmethod
    def _campaign_id_as_str(cls, value: Any) -> Any:
        # CLIENTS entries usually carry numeric ids, e.g. {"cocCampaignId": 1}
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class ClientConfig(BaseModel):
    id: str
    name: str = ""
    fbAccessToken: str = ""
    cocLoginId: str = ""
    cocPassword: str = ""
    adAccounts: list[AdAccountConfig] = Field(default_factory=list)

    def public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "adAccounts": [a.model_dump() for a in self.adAccounts],
        }


def coc_base_url() -> str:
    return os.environ.get("COC_BASE_URL", DEFAULT_COC_BASE_URL).rstrip("/")


def fb_base_url() -> str:
    version = os.environ.get("FB_API_VERSION", DEFAULT_FB_API_VERSION).strip() or DEFAULT_FB_API_VERSION
    return f"https://graph.facebook.com/{version}"


def coc_page_size() -> int:
    size = to_int(os.environ.get("COC_PAGE_SIZE"), DEFAULT_COC_PAGE_SIZE)
    return size if size > 0 else DEFAULT_COC_PAGE_SIZE


def insight_spend_floor() -> float:
    return to_float(os.environ.get("INSIGHT_SPEND_FLOOR"), DEFAULT_SPEND_FLOOR)


def insight_threshold_pct() -> float:
    return to_float(os.environ.get("INSIGHT_THRESHOLD_PCT"), DEFAULT_THRESHOLD_PCT)


def load_clients(raw: str | None = None) -> list[ClientConfig]:
    """Parse the CLIENTS JSON list. Re-read on every call; nothing is cached."""
    if raw is None:
        raw = os.environ.get("CLIENTS", "")
    if not raw.strip():
        logger.warning("CLIENTS env var not set, using empty client list")
        return []

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"CLIENTS is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ConfigError("CLIENTS must be a JSON list")

    try:
        return [ClientConfig(**c) for c in data]
    except (TypeError, ValidationError) as exc:
        raise ConfigError(f"Invalid CLIENTS entry: {exc}") from exc


def get_client(client_id: str, clients: list[ClientConfig] | None = None) -> ClientConfig:
    if clients is None:
        clients = load_clients()
    for c in clients:
        if c.id == client_id:
            return c
    raise ClientNotFound(client_id)
