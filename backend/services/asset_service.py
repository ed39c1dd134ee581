"""Asset service: holdings CRUD against the remote store.

Every mutation is written to the remote store first and then applied to
the shared ``HoldingsState`` as one atomic replacement, so readers never
see a half-applied change. A local backup of the list is kept in client
storage and used when the remote store cannot be read.
"""

import logging
from dataclasses import replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models.portfolio_asset import PortfolioAsset
from schemas.asset import AssetCreate, AssetUpdate
from services.client_storage import ASSETS_BACKUP_KEY, ClientStorage
from services.exceptions import (
    AssetCreationError,
    AssetNotFoundError,
    InvalidInputError,
    RemoteStoreError,
    SymbolNotFoundError,
)
from services.holdings_state import HoldingsState
from services.price_resolver import PriceResolver
from services.types import AssetType, Currency, Holding, as_utc, utcnow

logger = logging.getLogger(__name__)

AMOUNT_QUANTUM = Decimal("0.00000001")


def parse_decimal(raw: Any, field: str, allow_negative: bool = True) -> Decimal:
    """Parse user input into a finite Decimal or raise InvalidInputError."""
    text = "" if raw is None else str(raw).strip()
    if not text:
        raise InvalidInputError(f"{field} is required")
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise InvalidInputError(f"{field} must be a number, got {text!r}") from e
    if not value.is_finite():
        raise InvalidInputError(f"{field} must be a finite number")
    if not allow_negative and value < 0:
        raise InvalidInputError(f"{field} must not be negative")
    return value


def holding_to_dict(holding: Holding) -> dict:
    return {
        "id": holding.id,
        "symbol": holding.symbol,
        "name": holding.name,
        "type": holding.asset_type.value,
        "amount": str(holding.amount),
        "price": str(holding.price),
        "original_currency": holding.original_currency.value,
        "coin_id": holding.coin_id,
        "last_fetched": holding.last_fetched.isoformat() if holding.last_fetched else None,
        "is_hidden": holding.is_hidden,
    }


def holding_from_dict(data: dict) -> Holding:
    last_fetched = data.get("last_fetched")
    return Holding(
        id=int(data["id"]),
        symbol=data["symbol"],
        name=data.get("name") or data["symbol"],
        asset_type=AssetType(data["type"]),
        amount=Decimal(str(data["amount"])),
        price=Decimal(str(data["price"])),
        original_currency=Currency(data.get("original_currency") or Currency.USD.value),
        coin_id=data.get("coin_id"),
        last_fetched=as_utc(datetime.fromisoformat(last_fetched)) if last_fetched else None,
        is_hidden=bool(data.get("is_hidden", False)),
    )


def _row_to_holding(row: PortfolioAsset) -> Holding:
    return Holding(
        id=row.id,
        symbol=row.symbol,
        name=row.name or row.symbol,
        asset_type=AssetType(row.type),
        amount=Decimal(row.amount),
        price=Decimal(row.price),
        original_currency=Currency(row.original_currency or Currency.USD.value),
        coin_id=row.coin_id,
        last_fetched=as_utc(row.last_fetched_at) if row.last_fetched_at else None,
        is_hidden=bool(row.is_hidden),
    )


class AssetService:
    """CRUD operations on holdings, keeping remote store and state in step."""

    def __init__(
        self,
        state: HoldingsState,
        storage: ClientStorage,
        session_factory: Optional[sessionmaker] = None,
        resolver: Optional[PriceResolver] = None,
        demo_mode: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._state = state
        self._storage = storage
        self._session_factory = session_factory
        self._resolver = resolver
        self._demo_mode = demo_mode
        self._clock = clock
        if not demo_mode:
            state.subscribe(self._write_backup)

    @property
    def resolver(self) -> PriceResolver:
        if self._resolver is None:
            self._resolver = PriceResolver()
        return self._resolver

    @property
    def remote_enabled(self) -> bool:
        return self._session_factory is not None and not self._demo_mode

    def list_assets(self) -> list[Holding]:
        return list(self._state.holdings)

    def get_asset(self, asset_id: int) -> Holding:
        holding = self._state.get(asset_id)
        if holding is None:
            raise AssetNotFoundError(asset_id)
        return holding

    def load(self) -> list[Holding]:
        """Populate the holdings state from the remote store.

        Falls back to the local backup when the remote read fails, and to
        the demo dataset in demo mode.
        """
        if self._demo_mode:
            from services.demo_data import demo_holdings

            holdings = demo_holdings(self._clock())
        elif self._session_factory is None:
            holdings = self._read_backup()
        else:
            try:
                holdings = self._remote_list()
            except RemoteStoreError:
                logger.warning("Assets: remote load failed, using local backup", exc_info=True)
                holdings = self._read_backup()

        self._state.replace(holdings)
        logger.info("Assets: loaded %d holdings", len(holdings))
        return holdings

    def add_asset(self, form: AssetCreate) -> Holding:
        """Create a holding after resolving its price.

        Raises:
            AssetCreationError: The symbol could not be resolved, or the
                               source was unavailable and no manual price
                               was given. Nothing was stored.
            InvalidInputError: Amount or manual price is not numeric.
            RemoteStoreError: The insert failed.
        """
        symbol = self._clean_symbol(form.symbol)
        asset_type = AssetType(form.type)
        amount = self._parse_amount(form.amount if form.amount not in (None, "") else "1")
        manual_price = None
        if form.manual_price not in (None, ""):
            manual_price = parse_decimal(form.manual_price, "price", allow_negative=False)

        if manual_price is not None and asset_type is not AssetType.CRYPTO:
            # A manual price makes the lookup unnecessary for stocks and cash
            price, coin_id = manual_price, None
            original_currency = Currency(form.price_currency or Currency.USD)
        else:
            try:
                quote = self.resolver.resolve(
                    symbol, asset_type, entry_currency=form.price_currency
                )
            except SymbolNotFoundError as e:
                raise AssetCreationError(f"Could not find a price for {symbol}") from e
            if manual_price is None and not quote.has_price:
                raise AssetCreationError(
                    f"Price source unavailable for {symbol}, try again later"
                )
            price = manual_price if manual_price is not None else quote.price
            coin_id = quote.coin_id
            # Quoted prices keep the source's currency
            if manual_price is None:
                original_currency = Currency(quote.original_currency)
            else:
                original_currency = Currency(form.price_currency or quote.original_currency)

        holding = Holding(
            id=0,
            symbol=symbol,
            name=(form.name or "").strip() or symbol,
            asset_type=asset_type,
            amount=amount,
            price=price,
            original_currency=original_currency,
            coin_id=coin_id,
            last_fetched=self._clock(),
        )

        if self.remote_enabled:
            holding = self._remote_insert(holding)
        else:
            next_id = max((h.id for h in self._state.holdings), default=0) + 1
            holding = replace(holding, id=next_id)

        self._state.update(lambda current: (*current, holding))
        logger.info("Assets: added %s (id=%s)", holding.symbol, holding.id)
        return holding

    def update_amount(self, asset_id: int, raw: Any) -> Holding:
        amount = self._parse_amount(raw)
        return self._apply(asset_id, {"amount": amount}, amount=amount)

    def update_price(self, asset_id: int, raw: Any) -> Holding:
        """Manual price edit. Counts as a fresh fetch for the cache."""
        price = parse_decimal(raw, "price", allow_negative=False)
        now = self._clock()
        return self._apply(
            asset_id,
            {"price": price, "last_fetched_at": now},
            price=price,
            last_fetched=now,
        )

    def update_symbol(self, asset_id: int, raw: Any) -> Holding:
        symbol = self._clean_symbol(raw)
        return self._apply(asset_id, {"symbol": symbol}, symbol=symbol)

    def update_name(self, asset_id: int, raw: Any) -> Holding:
        name = self._clean_name(raw)
        return self._apply(asset_id, {"name": name}, name=name)

    def update_asset(self, asset_id: int, form: AssetUpdate) -> Holding:
        """Apply several edits as one change. Every field is validated first."""
        fields = form.model_dump(exclude_unset=True)
        columns: dict[str, Any] = {}
        changes: dict[str, Any] = {}
        if fields.get("amount") is not None:
            changes["amount"] = columns["amount"] = self._parse_amount(fields["amount"])
        if fields.get("price") is not None:
            changes["price"] = columns["price"] = parse_decimal(
                fields["price"], "price", allow_negative=False
            )
            changes["last_fetched"] = columns["last_fetched_at"] = self._clock()
        if fields.get("symbol") is not None:
            changes["symbol"] = columns["symbol"] = self._clean_symbol(fields["symbol"])
        if fields.get("name") is not None:
            changes["name"] = columns["name"] = self._clean_name(fields["name"])
        if not changes:
            return self.get_asset(asset_id)
        return self._apply(asset_id, columns, **changes)

    def toggle_hidden(self, asset_id: int) -> Holding:
        is_hidden = not self.get_asset(asset_id).is_hidden
        return self._apply(asset_id, {"is_hidden": is_hidden}, is_hidden=is_hidden)

    def delete_asset(self, asset_id: int) -> None:
        """Hard delete. Irreversible."""
        self.get_asset(asset_id)
        if self.remote_enabled:
            try:
                with self._session_factory() as db:
                    db.query(PortfolioAsset).filter(PortfolioAsset.id == asset_id).delete()
                    db.commit()
            except SQLAlchemyError as e:
                raise RemoteStoreError(f"Failed to delete asset {asset_id}: {e}") from e
        self._state.update(lambda current: [h for h in current if h.id != asset_id])
        logger.info("Assets: deleted id=%s", asset_id)

    def save_prices(self, holdings: list[Holding]) -> int:
        """Persist refreshed prices. Background path: failures are logged only."""
        if not holdings or not self.remote_enabled:
            return 0
        try:
            with self._session_factory() as db:
                for holding in holdings:
                    db.query(PortfolioAsset).filter(PortfolioAsset.id == holding.id).update(
                        {
                            "price": holding.price,
                            "coin_id": holding.coin_id,
                            "last_fetched_at": holding.last_fetched,
                        }
                    )
                db.commit()
        except SQLAlchemyError:
            logger.warning("Assets: failed to persist %d refreshed prices", len(holdings), exc_info=True)
            return 0
        return len(holdings)

    @staticmethod
    def _parse_amount(raw: Any) -> Decimal:
        return parse_decimal(raw, "amount").quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)

    @staticmethod
    def _clean_symbol(raw: Any) -> str:
        symbol = ("" if raw is None else str(raw)).strip().upper()
        if not symbol:
            raise InvalidInputError("symbol is required")
        return symbol

    @staticmethod
    def _clean_name(raw: Any) -> str:
        name = ("" if raw is None else str(raw)).strip()
        if not name:
            raise InvalidInputError("name is required")
        return name

    def _apply(self, asset_id: int, columns: dict[str, Any], **changes: Any) -> Holding:
        """Write ``columns`` remotely, then swap in the changed holding."""
        self.get_asset(asset_id)
        if self.remote_enabled:
            try:
                with self._session_factory() as db:
                    updated = (
                        db.query(PortfolioAsset)
                        .filter(PortfolioAsset.id == asset_id)
                        .update(columns)
                    )
                    db.commit()
            except SQLAlchemyError as e:
                raise RemoteStoreError(f"Failed to update asset {asset_id}: {e}") from e
            if updated == 0:
                raise AssetNotFoundError(asset_id)

        self._state.update(
            lambda current: [replace(h, **changes) if h.id == asset_id else h for h in current]
        )
        return self.get_asset(asset_id)

    def _remote_list(self) -> list[Holding]:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(PortfolioAsset)
                    .order_by(PortfolioAsset.created_at.asc(), PortfolioAsset.id.asc())
                    .all()
                )
                return [_row_to_holding(r) for r in rows]
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"Failed to load assets: {e}") from e

    def _remote_insert(self, holding: Holding) -> Holding:
        row = PortfolioAsset(
            symbol=holding.symbol,
            name=holding.name,
            type=holding.asset_type.value,
            amount=holding.amount,
            price=holding.price,
            coin_id=holding.coin_id,
            original_currency=holding.original_currency.value,
            is_hidden=False,
            last_fetched_at=holding.last_fetched,
        )
        try:
            with self._session_factory() as db:
                db.add(row)
                db.commit()
                db.refresh(row)
                return _row_to_holding(row)
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"Failed to add {holding.symbol}: {e}") from e

    def _read_backup(self) -> list[Holding]:
        holdings = []
        for item in self._storage.get(ASSETS_BACKUP_KEY) or []:
            try:
                holdings.append(holding_from_dict(item))
            except (KeyError, TypeError, ValueError, InvalidOperation):
                logger.debug("Assets: skipping invalid backup entry %r", item)
        return holdings

    def _write_backup(self, holdings: tuple[Holding, ...], version: int) -> None:
        self._storage.set(ASSETS_BACKUP_KEY, [holding_to_dict(h) for h in holdings])
