"""Application services composed over the policy engine and state layer."""

from ledger_core.services.records import RecordService

__all__ = ["RecordService"]
