# File: src/parking_ledger/domain/strategies.py
"""
Pricing Strategies for the Parking Ledger

Fees are a linear function of occupied time: elapsed milliseconds times a
per-millisecond base rate. The ``is_peak`` flag selects an optional
multiplier; with the default multiplier of 1 it has no effect.

Strategies are stateless apart from their configuration and can be swapped
on the application service at runtime.
"""

from abc import ABC, abstractmethod
import logging

from .exceptions import InvalidAmount, InvalidTimeRange
from .models import Slot, validate_amount


# ============================================================================
# STRATEGY INTERFACES
# ============================================================================

class PricingStrategy(ABC):
    """
    Abstract base class for pricing strategies
    Defines the interface for fee calculation algorithms
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def calculate_parking_fee(
        self,
        start_time: int,
        end_time: int,
        base_rate: int,
        is_peak: bool = False
    ) -> int:
        """
        Calculate the fee for an occupancy between two timestamps
        Returns: fee in the smallest currency unit
        """
        pass

    def calculate_slot_fee(self, slot: Slot, base_rate: int, is_peak: bool = False) -> int:
        """Fee for the slot's last completed occupancy cycle"""
        return self.calculate_parking_fee(slot.start_time, slot.end_time, base_rate, is_peak)

    def get_strategy_name(self) -> str:
        """Get human-readable strategy name"""
        return self.__class__.__name__.replace("Strategy", "")

    def __str__(self) -> str:
        return f"{self.get_strategy_name()} Strategy"


# ============================================================================
# PRICING STRATEGIES
# ============================================================================

class LinearPricingStrategy(PricingStrategy):
    """
    Linear pricing: ``(end_time - start_time) * base_rate``

    A reversed time range raises InvalidTimeRange instead of producing a
    wrapped-around fee.
    """

    def __init__(self, peak_multiplier: int = 1):
        super().__init__()
        if isinstance(peak_multiplier, bool) or not isinstance(peak_multiplier, int) \
                or peak_multiplier < 1:
            raise InvalidAmount(peak_multiplier, "peak_multiplier")
        self.peak_multiplier = peak_multiplier

    def calculate_parking_fee(
        self,
        start_time: int,
        end_time: int,
        base_rate: int,
        is_peak: bool = False
    ) -> int:
        validate_amount(base_rate, "base_rate")
        if end_time < start_time:
            raise InvalidTimeRange(start_time, end_time)

        fee = (end_time - start_time) * base_rate
        if is_peak:
            fee *= self.peak_multiplier

        self.logger.debug(
            f"Fee for {start_time}..{end_time} at rate {base_rate} "
            f"(peak={is_peak}): {fee}"
        )
        return fee


_default_strategy = LinearPricingStrategy()


def calculate_parking_fee(
    start_time: int,
    end_time: int,
    base_rate: int,
    is_peak: bool = False
) -> int:
    """Pure fee calculation with the default linear strategy"""
    return _default_strategy.calculate_parking_fee(start_time, end_time, base_rate, is_peak)
