"""
records — Located, user-owned records and their shared machinery.

Sub-modules:
    schemas    — Location payload, create/patch validation helpers
    store      — ORM mixin + generic Entity Store with conditional writes
    service    — authorised create/read/update/delete
    resources  — relief supplies (Food, Water, Shelter ...)
    reports    — field reports (damage, injuries, needs ...)
"""
