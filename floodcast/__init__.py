"""
FloodCast — Location-based flood alerting pipeline.

Architecture:
    floodcast/
    ├── alerting/        # Classifier, guidance, store, event bus, scheduler, monitor
    ├── services/        # External collaborators (prediction provider client)
    ├── middleware/      # HTTP error handling
    ├── api/             # FastAPI routers (HTTP control surface)
    ├── service.py       # FloodAlertService — one instance per process (or test)
    └── monitor_main.py  # Headless monitor entry point

Module Boundaries:
    - The prediction model is EXTERNAL — FloodCast only consumes probabilities
    - Notification delivery is EXTERNAL — FloodCast only submits / cancels tasks
    - At most one live alert per location key, always replaced, never mutated

Data Flow:
    Location Monitor → Classifier + Guidance → Alert Store → Event Bus
    → subscribers (UI, SSE) and → Notification Scheduler → delivery sink

Version: 1.0.0
"""

__version__ = "1.0.0"
