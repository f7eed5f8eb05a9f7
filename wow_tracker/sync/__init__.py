"""
Raid catalog synchronization: three providers reconciled into one
Expansion → Season → Raid → Boss hierarchy.

Submodules:
  matching  : slug generation and the tiered raid / icon matchers
  results   : per-unit outcome accumulation and the ``SyncResult`` report
  raid_sync : ``RaidSyncEngine``, the six-phase orchestrator
"""
