"""
Execution Engine - Market Sync.

============================================================
RESPONSIBILITY
============================================================
Applies externally sourced market data (closing prices,
daily volume and value) to instruments.

- Each symbol is written in its own transaction
- Writes go through InstrumentPatch under the row lock
- Inventory fields are never touched
- One bad symbol does not stop a batch

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from database.engine import Database, DatabasePersistenceError

from .errors import TradingError
from .inventory import InstrumentInventory
from .types import InstrumentPatch


logger = logging.getLogger(__name__)


@dataclass
class MarketSyncResult:
    """Outcome of a batch sync."""

    synced: int = 0
    """Symbols written."""

    skipped: int = 0
    """Symbols with an empty patch."""

    errors: int = 0
    """Symbols that failed."""

    details: List[Dict[str, Any]] = field(default_factory=list)
    """Per-symbol outcome."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synced": self.synced,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": list(self.details),
        }


class MarketSyncService:
    """Writes market-data patches to instruments."""

    def __init__(self, database: Database):
        self._database = database

    def apply(self, symbol: str, patch: InstrumentPatch) -> Dict[str, Any]:
        """
        Apply one patch in its own transaction.

        Unverified instruments are synced too.

        Returns:
            Instrument market fields after the write

        Raises:
            NotFoundError: unknown symbol
        """
        with self._database.transaction() as session:
            company = InstrumentInventory(session, require_verified=False).apply_market_update(symbol, patch)
            return {
                "symbol": company.symbol,
                "sharePrice": str(company.share_price),
                "closingPrice": str(company.closing_price),
                "previousClosingPrice": str(company.previous_closing_price),
                "priceChange": str(company.price_change),
                "tradedVolume": str(company.traded_volume),
                "tradedValue": str(company.traded_value),
                "snapshotDate": company.snapshot_date.isoformat() if company.snapshot_date else None,
            }

    def apply_batch(self, patches: Mapping[str, InstrumentPatch]) -> MarketSyncResult:
        """Apply patches symbol by symbol, isolating failures."""
        result = MarketSyncResult()

        for symbol, patch in patches.items():
            if patch.is_empty():
                result.skipped += 1
                result.details.append({"symbol": symbol, "status": "skipped"})
                continue
            try:
                written = self.apply(symbol, patch)
            except (TradingError, DatabasePersistenceError) as e:
                result.errors += 1
                result.details.append({"symbol": symbol, "status": "error", "error": str(e)})
                logger.warning(f"Market sync failed for {symbol}: {e}")
                continue
            result.synced += 1
            result.details.append({"symbol": symbol, "status": "synced", "values": written})

        logger.info(
            f"Market sync complete: synced={result.synced} skipped={result.skipped} errors={result.errors}"
        )
        return result
