from __future__ import annotations


class FusionError(Exception):
    pass


class UpstreamError(FusionError):
    """A provider (Meta or Checkout Champ) call failed."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None):
        super().__init__(f"{provider} API error: {message}")
        self.provider = provider
        self.status_code = status_code


class ConfigError(FusionError):
    pass


class ClientNotFound(ConfigError):
    def __init__(self, client_id: str):
        super().__init__(f'Client "{client_id}" not found')
        self.client_id = client_id
