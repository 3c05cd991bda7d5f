"""
Matching & Allocation Engine wiring.

One process-wide instance holds the in-process lock registries and the
ranker's in-flight computations, so every request must share it. Exposed
as a FastAPI dependency so tests can swap it.
"""

from typing import Optional

import campus_parking.app.core.redis_client as redis_client_module
from campus_parking.app.domain.matching.ranker import MatchRanker
from campus_parking.app.domain.rentals.coordinator import AllocationCoordinator
from campus_parking.app.domain.rentals.lifecycle import RentalLifecycleManager
from campus_parking.app.services.events import EventPublisher
from campus_parking.app.services.payments import InMemoryPaymentGateway, PaymentGateway, PaymentService
from campus_parking.app.services.spot_ledger import SpotLedger


class Engine:
    """Container for the engine's long-lived components."""

    def __init__(self, gateway: Optional[PaymentGateway] = None, redis=None, payments: Optional[PaymentService] = None):
        self.gateway = gateway or InMemoryPaymentGateway()
        self.payments = payments or PaymentService(self.gateway)
        self.publisher = EventPublisher()
        self.ledger = SpotLedger()
        self.lifecycle = RentalLifecycleManager(self.ledger, self.payments, self.publisher)
        self.coordinator = AllocationCoordinator(self.lifecycle)
        self.ranker = MatchRanker(
            redis if redis is not None else redis_client_module.redis_client,
            publisher=self.publisher,
        )


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """FastAPI dependency returning the shared engine."""
    global _engine
    if _engine is None:
        _engine = Engine()
    return _engine
