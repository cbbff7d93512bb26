"""Vaultdrop: time- and quota-limited share-link downloads."""

from .app import create_app
from .settings import VaultdropSettings

__all__ = ["create_app", "VaultdropSettings"]
