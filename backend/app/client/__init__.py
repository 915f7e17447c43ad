"""
client — Python client for the alert service.

Modules:
    reconciliation  — local alert cache merging reads, optimistic writes
                      and socket messages
    alert_client    — async HTTP client bundling a cache with the API
"""
