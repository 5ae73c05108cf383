"""
Dispatch Hub: a live, reconciled view of the vehicle dispatch pipeline.

The service joins dispatch records with reallocation history and the
production schedule, classifies every vehicle and lets operators flag,
comment on and book vehicles with optimistic updates against a realtime
store.
"""

__version__ = "0.1.0"
