"""
realtime — In-process fan-out of committed alert changes.

Sub-modules:
    events  — AlertEvent and its wire encoding
    bus     — FanOutBus: one bounded queue + pump task per subscriber
"""
