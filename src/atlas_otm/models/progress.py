from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Eta:
    """Remaining time, coarsened to a single unit"""
    value: int
    unit: str

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"


@dataclass(frozen=True)
class FetchProgress:
    """Counters of one pipeline run.

    Instances are immutable; the pipeline derives a new value after every
    tile with :meth:`advance`.
    """
    total_tiles: int
    start_time: float
    processed_tiles: int = 0
    failed_tiles: int = 0
    bytes_transferred: int = 0

    def advance(self, nbytes: int = 0, failed: bool = False) -> "FetchProgress":
        return FetchProgress(
            total_tiles=self.total_tiles,
            start_time=self.start_time,
            processed_tiles=self.processed_tiles + 1,
            failed_tiles=self.failed_tiles + (1 if failed else 0),
            bytes_transferred=self.bytes_transferred + nbytes,
        )

    @property
    def remaining_tiles(self) -> int:
        return self.total_tiles - self.processed_tiles

    @property
    def percent(self) -> float:
        if self.total_tiles == 0:
            return 100.0
        return round(self.processed_tiles / self.total_tiles * 100, 2)


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted after each tile"""
    tier: str
    x: int
    y: int
    processed_tiles: int
    total_tiles: int
    percent: float
    time_per_tile: float
    tiles_per_second: float
    eta: Eta
    bytes_transferred: Optional[int] = None

    type = "progress"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "tier": self.tier,
            "x": self.x,
            "y": self.y,
            "processedTiles": self.processed_tiles,
            "totalTiles": self.total_tiles,
            "progress": self.percent,
            "timePerTile": self.time_per_tile,
            "tilesPerSecond": self.tiles_per_second,
            "eta": {"value": self.eta.value, "unit": self.eta.unit},
        }
        if self.bytes_transferred is not None:
            data["bytesTransferred"] = self.bytes_transferred
        return data


@dataclass(frozen=True)
class ErrorEvent:
    """A tile failed while the run continues"""
    tier: str
    x: int
    y: int
    error: str

    type = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "tier": self.tier, "x": self.x, "y": self.y,
                "error": self.error}


@dataclass(frozen=True)
class SummaryEvent:
    """Final event of a run that was not aborted"""
    status: str  # 'completed' or 'cancelled'
    total_tiles: int
    processed_tiles: int
    failed_tiles: int
    elapsed_seconds: float
    average_time_per_tile: float
    bytes_transferred: int
    failures: List[Dict[str, Any]] = field(default_factory=list)

    type = "summary"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status,
            "totalTiles": self.total_tiles,
            "processedTiles": self.processed_tiles,
            "failedTiles": self.failed_tiles,
            "totalTime": self.elapsed_seconds,
            "averageTimePerTile": self.average_time_per_tile,
            "bytesTransferred": self.bytes_transferred,
            "failures": list(self.failures),
        }
