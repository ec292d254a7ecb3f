"""PayWiser ClearNode client: Yellow Network state channels for biometric payments."""

from paywiser.client import ClearNodeClient
from paywiser.core.config import ClearNodeSettings, load_settings
from paywiser.security.identity import Identity

__version__ = "1.0.0"

__all__ = [
    "ClearNodeClient",
    "ClearNodeSettings",
    "Identity",
    "load_settings",
]
