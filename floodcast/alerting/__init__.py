"""
FloodCast Alerting Core.

Components:
- schemas: Location keys, predictions, alerts, notification tasks
- classifier: Severity / risk classification, countdown formatting, trigger gate
- guidance: Preparation guidance per severity tier
- builder: Single construction path for FloodAlert (live + synthetic)
- events: Synchronous fan-out of alert changes to subscribers
- store: At most one live alert per location key
- dedup: Notification cooldown to prevent notification storms
- notifications: Tiered notification tasks and the sink protocol
- sinks: In-memory and webhook delivery sinks
- monitor: Periodic per-location prediction polling
- synthetic: Synthetic alerts and demo scenarios for testing the pipeline
"""
