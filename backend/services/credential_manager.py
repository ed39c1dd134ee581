"""Keyring-backed credential storage for price source API keys.

Provides a thin wrapper around the ``keyring`` library so the CoinGecko
demo key can live in the system keychain instead of a ``.env`` file
(store it with ``keyring set fold COINGECKO_API_KEY``).
The ``keyring`` import is lazy so the rest of the app works even if no
keyring backend is available.
"""

import logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "fold"

CREDENTIAL_KEYS: frozenset[str] = frozenset({"COINGECKO_API_KEY"})


def get_credential(key: str) -> str | None:
    """Retrieve a credential from the keychain.

    Args:
        key: The credential name (e.g. ``"COINGECKO_API_KEY"``).

    Returns:
        The credential value, or ``None`` if not found or keyring
        is unavailable.
    """
    try:
        import keyring
    except ImportError:
        return None

    try:
        return keyring.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None

