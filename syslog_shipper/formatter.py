"""Record formatter — renders a RawRecord as one batch-file line."""

import json

from syslog_shipper.models import RawRecord, RecordFormat, record_to_dict


def format_record(record: RawRecord, fmt: RecordFormat) -> str:
    """Serialize *record* to a single line (no trailing newline).

    TEXT yields the trimmed payload as-is. JSON yields a compact object with
    the payload, source address, receiver identity, byte count and receive time.
    Embedded newlines in a TEXT payload are escaped so one record stays one line.
    """
    if fmt is RecordFormat.JSON:
        return json.dumps(record_to_dict(record), ensure_ascii=False, separators=(",", ":"))
    return record.payload.replace("\r", "\\r").replace("\n", "\\n")
