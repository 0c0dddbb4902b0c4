"""
OracleGuard: refuse to act on stale, flagged or inconsistent prices.

A price is usable when it is younger than the stale threshold (refreshing it
once via update() if not), the oracle does not report bad data, neither quote
is zero and, when a bound is given, the low/high spread is within the pair's
maximum oracle deviation.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .errors import CapabilityError, OracleDataInvalidError, OracleStaleError
from .gas import GasPolicy
from .models import OracleSnapshot
from .reader import RemoteStateReader
from .transactions import TransactionSender

logger = logging.getLogger(__name__)

# Fixed-point scale of the pair's maxOracleDeviation
DEVIATION_PRECISION = 100_000


def price_deviation(price_low: int, price_high: int) -> int:
    """Spread between the two quotes in parts per DEVIATION_PRECISION of the high quote."""
    if price_high == 0:
        return 0
    return (price_high - price_low) * DEVIATION_PRECISION // price_high


class OracleGuard:
    def __init__(
        self,
        reader: RemoteStateReader,
        sender: Optional[TransactionSender] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.reader = reader
        self.sender = sender
        self.clock = clock

    def _age(self, last_update_time: int) -> int:
        return int(self.clock()) - last_update_time

    def refresh(self, oracle_address: str) -> str:
        """Submit oracle.update() and wait for it; returns the transaction hash."""
        if self.sender is None:
            raise CapabilityError("OracleGuard has no transaction sender; cannot refresh the oracle.")
        func = self.reader.oracle_contract(oracle_address).functions.update()
        budget = self.sender.budget(func, GasPolicy.for_oracle_update())
        sent = self.sender.send(func, "oracle.update", budget)
        return sent.transaction_hash

    def ensure_fresh_price(
        self,
        oracle_address: str,
        stale_threshold_seconds: Optional[int] = None,
        max_deviation: Optional[int] = None,
    ) -> OracleSnapshot:
        """
        Return a snapshot that is safe to base a risk decision on.

        stale_threshold_seconds=None uses the oracle's own maxOracleDelay().

        Raises:
            OracleStaleError: too old and a refresh was impossible or did not help
            OracleDataInvalidError: bad-data flag, zero price or excessive spread
        """
        threshold = stale_threshold_seconds
        if threshold is None:
            threshold = self.reader.get_oracle_max_delay(oracle_address)

        last_update = self.reader.get_oracle_last_update(oracle_address)
        age = self._age(last_update)
        if age > threshold:
            if self.sender is None:
                raise OracleStaleError(oracle_address, age, threshold, refresh_attempted=False)

            logger.warning(f"Oracle {oracle_address} price is {age}s old (threshold {threshold}s); refreshing")
            self.refresh(oracle_address)
            age = self._age(self.reader.get_oracle_last_update(oracle_address))
            if age > threshold:
                raise OracleStaleError(oracle_address, age, threshold, refresh_attempted=True)

        return self._validate(oracle_address, self.reader.get_oracle_snapshot(oracle_address), max_deviation)

    def check_price(self, oracle_address: str, max_deviation: Optional[int] = None) -> OracleSnapshot:
        """Validate the current quotes without refreshing; staleness is not checked."""
        return self._validate(oracle_address, self.reader.get_oracle_snapshot(oracle_address), max_deviation)

    def _validate(self, oracle_address: str, snapshot: OracleSnapshot, max_deviation: Optional[int]) -> OracleSnapshot:
        if snapshot.is_bad_data:
            raise OracleDataInvalidError(oracle_address, "oracle reported bad data", snapshot.price_low, snapshot.price_high)
        if snapshot.price_low == 0 or snapshot.price_high == 0:
            raise OracleDataInvalidError(oracle_address, "zero price", snapshot.price_low, snapshot.price_high)

        if max_deviation is not None:
            deviation = price_deviation(snapshot.price_low, snapshot.price_high)
            if deviation > max_deviation:
                raise OracleDataInvalidError(
                    oracle_address,
                    f"price deviation {deviation} exceeds max {max_deviation}",
                    snapshot.price_low,
                    snapshot.price_high,
                )

        logger.debug(
            f"Oracle {oracle_address} ok: low={snapshot.price_low} high={snapshot.price_high} "
            f"age={self._age(snapshot.last_update_time)}s"
        )
        return snapshot
