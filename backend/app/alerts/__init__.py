"""
alerts — Alert broadcast and real-time notification engine.

Sub-modules:
    models           — Data structures shared across the engine
    orm              — SQLAlchemy tables for alerts and recipients
    repository       — Alert persistence and recipient directory
    validation       — Alert invariants for create and update
    scope            — Who must be notified about an alert
    channels/        — Notification delivery backends (email)
    dispatcher       — Bounded, failure-isolating fan-out
    snapshot         — Dashboard aggregates
    realtime         — Live subscriber hub
    reports          — Filtered historical reports
    report_document  — Printable HTML / PDF report
    service          — Orchestration of create / update / delete
"""
