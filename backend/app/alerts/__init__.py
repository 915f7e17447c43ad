"""
alerts — Disaster alert lifecycle and proximity search.

Sub-modules:
    models      — AlertType / Severity / AlertStatus enums, AlertCreate payload
    store       — alerts table + AlertStore (conditional writes, box scan)
    geo_query   — GeoQueryEngine: bounding box, then exact Haversine
    lifecycle   — AlertLifecycleManager: authorised CRUD, publishes changes
"""
