"""Instance status provider backed by the controller's status command."""
from __future__ import annotations

from dataclasses import dataclass

from ..errors import ApplicationError, ProtocolError
from ..models import InstanceStatus, StatusSnapshot
from ..records import decode_status
from .control import ALL_TARGETS, OK, ControlChannel, split_response


@dataclass(slots=True)
class InstanceStatusProvider:
    """Fetch status snapshots of the managed instances."""

    control: ControlChannel

    def fetch(self, name: str | None = None) -> StatusSnapshot:
        """Return the status of *name*, or of every instance when omitted.

        Records that fail to decode are skipped and reported through the
        snapshot's ``warnings``; the remaining records are still returned,
        ordered by name. A non-``OK`` answer raises :class:`ApplicationError`
        carrying the controller's message verbatim.
        """
        response = self.control.send(name or ALL_TARGETS, "status", want_body=True)
        head, lines = split_response(response)
        if head != OK:
            raise ApplicationError(head)

        records: list[InstanceStatus] = []
        warnings: list[str] = []
        for line in lines:
            try:
                records.append(decode_status(line))
            except ProtocolError as exc:
                warnings.append(f"failed to parse response from merovingian: {exc.message}")
        return StatusSnapshot.from_records(records, warnings=warnings)


__all__ = ["InstanceStatusProvider"]
