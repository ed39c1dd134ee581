"""Exceptions raised by the service layer.

API routes translate these into HTTP errors; background jobs log them.
"""


class SymbolNotFoundError(Exception):
    """The price source has no instrument for the requested symbol."""

    def __init__(self, symbol: str, asset_type: str):
        self.symbol = symbol
        self.asset_type = asset_type
        super().__init__(f"Symbol not found: {symbol} ({asset_type})")


class AssetCreationError(Exception):
    """A new holding could not be created. Nothing was persisted."""

    pass


class AssetNotFoundError(Exception):
    """No holding exists with the given id."""

    def __init__(self, asset_id: int):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} not found")


class InvalidInputError(ValueError):
    """User-supplied field value was rejected. No mutation was applied."""

    pass


class RemoteStoreError(Exception):
    """Read or write against the remote store failed."""

    pass
