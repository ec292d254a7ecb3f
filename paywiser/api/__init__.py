"""HTTP surface for the Yellow Network client."""

from paywiser.api.app import create_app

__all__ = ["create_app"]
