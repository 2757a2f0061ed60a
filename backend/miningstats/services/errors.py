"""Error taxonomy shared by adapters, the cache orchestrator and routers.

Every error carries a stable ``code`` that is embedded verbatim in JSON
responses, so the frontend can branch on it without parsing messages.
"""

from typing import Any, Dict, Optional


class MiningStatsError(Exception):
    """Base class for expected, recoverable failures."""

    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class UnsupportedCoin(MiningStatsError):
    """Requested symbol is not in the supported set."""

    code = "unsupported_coin"

    def __init__(self, coin: str):
        self.coin = coin
        super().__init__(f"Unsupported coin: {coin}")


class MissingCredential(MiningStatsError):
    """A provider needs an API key that is not configured."""

    code = "no_api_key"

    def __init__(self, credential: str, message: Optional[str] = None):
        self.credential = credential
        super().__init__(message or f"{credential} not configured")


class UpstreamError(MiningStatsError):
    """Non-2xx status, timeout or malformed payload from a provider."""

    code = "fetch_failed"

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        super().__init__(message)


class Unauthorized(MiningStatsError):
    """Ingestion secret mismatch."""

    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class UnknownDataset(MiningStatsError):
    """Ingestion or serving asked for a dataset that does not exist."""

    code = "unknown_dataset"

    def __init__(self, dataset: str):
        self.dataset = dataset
        super().__init__(f"Unknown dataset: {dataset}")
