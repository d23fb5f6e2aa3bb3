"""Periodic tasks that simulate trailer level and water tank sensors."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from ..store import MAIN_ID
from ..utils import clamp, iso_timestamp, round_half_up

if TYPE_CHECKING:
    from ..hub import BroadcastHub
    from ..store import Collection, DocumentStore


@dataclass(frozen=True)
class FieldDrift:
    """Random walk rule for one numeric document field."""

    field: str
    min_delta: float
    max_delta: float
    lower: float
    upper: float

    def apply(self, value: float, rng: random.Random) -> float:
        """Perturb, clamp and round a value to one decimal."""
        drifted = clamp(value + rng.uniform(self.min_delta, self.max_delta), self.lower, self.upper)
        return round_half_up(drifted, 1)


# Small movements from wind and settling
LEVEL_DRIFTS = (
    FieldDrift("front_back", -0.1, 0.1, -15.0, 15.0),
    FieldDrift("side_to_side", -0.1, 0.1, -15.0, 15.0),
)

# Fresh water is used up, grey fills from usage, black fills slowly
WATER_DRIFTS = (
    FieldDrift("fresh", -0.3, 0.0, 0.0, 100.0),
    FieldDrift("grey", 0.0, 0.2, 0.0, 100.0),
    FieldDrift("black", 0.0, 0.05, 0.0, 100.0),
)


class SimulatedDocumentTicker:
    """Drifts one stored document on a fixed interval and broadcasts it."""

    def __init__(
        self,
        name: str,
        collection: "Collection",
        hub: "BroadcastHub",
        channel: str,
        interval: float,
        drifts: Sequence[FieldDrift],
        rng: Optional[random.Random] = None,
    ):
        """Initialize the ticker.

        Args:
            name: Label used in logs
            collection: Collection holding the ``main`` document
            hub: Broadcast hub; cycles are skipped while it has no clients
            channel: WebSocket channel for the updated document
            interval: Seconds between cycles
            drifts: Per-field random walk rules
            rng: Random source (injectable for tests)
        """
        self.name = name
        self.collection = collection
        self.hub = hub
        self.channel = channel
        self.interval = interval
        self.drifts = tuple(drifts)
        self.rng = rng or random.Random()
        self.logger = logging.getLogger(__name__)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """Run one cycle.

        Returns:
            True if the document was updated and broadcast
        """
        if not self.hub.has_clients:
            return False

        document = await self.collection.find_one({"_id": MAIN_ID})
        if document is None:
            return False

        updates: Dict[str, Any] = {
            drift.field: drift.apply(document[drift.field], self.rng) for drift in self.drifts
        }

        # Last writer wins; no concurrency token
        await self.collection.update_one(
            {"_id": MAIN_ID}, {"$set": {**updates, "updated_at": iso_timestamp()}}
        )
        await self.hub.broadcast(self.channel, {**document, **updates})
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception as e:
                self.logger.error(f"Error updating {self.name} simulation: {e}", exc_info=True)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        self.logger.info(f"Started {self.name} simulation every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.debug(f"Stopped {self.name} simulation")


class SimulationManager:
    """Owns the simulated sensor tickers."""

    def __init__(self, tickers: List[SimulatedDocumentTicker]):
        self.tickers = tickers
        self.logger = logging.getLogger(__name__)

    @classmethod
    def create(
        cls,
        store: "DocumentStore",
        hub: "BroadcastHub",
        level_interval: float = 2.0,
        water_interval: float = 10.0,
        rng: Optional[random.Random] = None,
    ) -> "SimulationManager":
        """Build the trailer level and water tank tickers."""
        return cls(
            [
                SimulatedDocumentTicker(
                    "trailer level",
                    store.collection("trailer_level"),
                    hub,
                    "level",
                    level_interval,
                    LEVEL_DRIFTS,
                    rng,
                ),
                SimulatedDocumentTicker(
                    "water", store.collection("water"), hub, "water", water_interval, WATER_DRIFTS, rng
                ),
            ]
        )

    @property
    def running_count(self) -> int:
        return sum(1 for ticker in self.tickers if ticker.running)

    def start_all(self) -> None:
        for ticker in self.tickers:
            ticker.start()

    async def stop_all(self) -> None:
        """Cancel all running tickers."""
        for ticker in self.tickers:
            await ticker.stop()
