"""Data structures for aggregated metric series."""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import List, Optional, Union

Timestamp = Union[int, float, datetime]


class MetricKind(str, Enum):
    """Kind of measurement recorded by application code."""
    GAUGE = "gauge"
    COUNTER = "counter"
    HISTOGRAM = "histogram"
    DISTRIBUTION = "distribution"


class SeriesType(IntEnum):
    """Series type codes understood by the v2 series API."""
    GAUGE = 0
    RATE = 1
    COUNT = 2


@dataclass
class Point:
    """A single (timestamp, value) point."""
    timestamp: int
    value: float


@dataclass
class DistributionPoint:
    """All raw values recorded within one second."""
    timestamp: int
    values: List[float] = field(default_factory=list)


@dataclass
class Series:
    """Flush output of one aggregator."""
    metric: str
    type: SeriesType
    points: list
    tags: List[str] = field(default_factory=list)
    host: Optional[str] = None
    is_distribution: bool = False


def to_unix_seconds(timestamp: Timestamp) -> int:
    """Convert a timestamp to whole unix seconds."""
    if isinstance(timestamp, datetime):
        timestamp = timestamp.timestamp()
    return int(math.floor(timestamp))
