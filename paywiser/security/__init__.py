"""Account and session-key signing."""

from paywiser.security.identity import Identity, canonical_json

__all__ = ["Identity", "canonical_json"]
