"""Streaming writer for the Coveralls JSON payload.

Usage:
    with PayloadWriter("coveralls.json", envelope) as writer:
        for record in records:
            writer.add_source_file(record)

or explicitly::

    writer = PayloadWriter("coveralls.json", envelope)
    writer.start()
    writer.add_source_file(record)
    writer.end()

Records are serialized as soon as they are added, so the full document is
never held in memory.
"""

import json
from pathlib import Path
from typing import IO

from coveralls_report.models import PayloadEnvelope, SourceCoverageRecord

CREATED = "created"
STARTED = "started"
ENDED = "ended"


class PayloadStateError(RuntimeError):
    """Raised when writer operations are called out of order."""


class PayloadWriter:
    """Writes ``{envelope..., "source_files": [...]}`` to *path* incrementally."""

    def __init__(self, path: str | Path, envelope: PayloadEnvelope) -> None:
        self.path = Path(path)
        self.envelope = envelope
        self.state = CREATED
        self.records_written = 0
        self._sink: IO[str] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Open the sink, write the envelope and open the ``source_files`` array."""
        if self.state != CREATED:
            raise PayloadStateError(f"start() called on a writer that is already {self.state}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._sink = self.path.open("w", encoding="utf-8", newline="\n")
        self.state = STARTED
        try:
            self._sink.write("{")
            for key, value in self.envelope.fields().items():
                self._sink.write(f"{_dump(key)}:{_dump(value)},")
            self._sink.write('"source_files":[')
        except Exception:
            self.abort()
            raise

    def add_source_file(self, record: SourceCoverageRecord) -> None:
        if self.state != STARTED:
            raise PayloadStateError(f"add_source_file() called on a writer that is {self.state}")
        if self.records_written:
            self._sink.write(",")
        self._sink.write(_dump(record.to_dict()))
        self.records_written += 1

    def end(self) -> None:
        """Close the array and the envelope, flush and release the sink."""
        if self.state != STARTED:
            raise PayloadStateError(f"end() called on a writer that is {self.state}")
        try:
            self._sink.write("]}")
            self._sink.flush()
        finally:
            self.close()

    def abort(self) -> None:
        """Release the sink and remove the incomplete payload file."""
        self.close()
        self.path.unlink(missing_ok=True)

    def close(self) -> None:
        """Release the sink without completing the document."""
        if self._sink is not None:
            self._sink.close()
            self._sink = None
        if self.state == STARTED:
            self.state = ENDED

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> "PayloadWriter":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.end()
        else:
            self.abort()


def _dump(value) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
