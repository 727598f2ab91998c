"""Record and job models passed between the pipeline stages."""

import datetime
import enum
from dataclasses import dataclass, field, asdict


class RecordFormat(enum.Enum):
    TEXT = "text"
    JSON = "json"

    @property
    def file_suffix(self) -> str:
        return ".txt" if self is RecordFormat.TEXT else ".json"

    @classmethod
    def from_suffix(cls, suffix: str) -> "RecordFormat | None":
        for fmt in cls:
            if fmt.file_suffix == suffix:
                return fmt
        return None


@dataclass(frozen=True)
class SourceAddress:
    address: str
    family: str
    port: int


@dataclass(frozen=True)
class RawRecord:
    payload: str
    source: SourceAddress
    receiver_identity: str
    received_bytes: int
    received_at: str = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat()
    )


@dataclass(frozen=True)
class IngestionJob:
    """One batch file waiting to be delivered to the store."""

    file_path: str
    table: str
    mapping: str
    data_format: RecordFormat
    event_count: int = 0


def record_to_dict(record: RawRecord) -> dict:
    """Convert a RawRecord to a plain dictionary."""
    return asdict(record)
