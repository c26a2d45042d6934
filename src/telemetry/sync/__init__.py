"""Telemetry sync engine for Hivewatch.

Modules:
    orchestrator — Per-run driver (full resync, hourly incremental, daily)
    dedup        — Two-phase write-time dedup on (scale, resolution, time)
"""
