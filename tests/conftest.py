import os

# Local in-memory store, no broker
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ENABLE_CHANGE_NOTIFIER", "false")
os.environ.setdefault("DISPATCH_ENV", "dev")

import datetime
import threading

import pytest

from dispatch_hub.integrations.realtime_store import InMemoryRealtimeStore
from dispatch_hub.services.workspace import DispatchWorkspace

FIXED_NOW = datetime.datetime(2024, 4, 1, 9, 0, tzinfo=datetime.timezone.utc)


def seed_data() -> dict:
    return {
        "Dispatch": {
            "ABC123": {
                "Chassis No": "ABC123",
                "Customer": "Alice Smith",
                "Model": "RV-20",
                "SAP Data": "Dealer Y",
                "Scheduled Dealer": "Dealer Y",
                "Statuscheck": "OK",
                "SO Number": "SO-1001",
                "Vin Number": "VIN0001",
                "GR to GI Days": 12,
                "EstimatedPickupAt": "2024-04-01T15:00:00.000Z",
            },
            "DEF456": {
                "Chassis No": "DEF456",
                "Customer": "Bob Jones",
                "Model": "RV-22",
                "SAP Data": "Dealer A",
                "Scheduled Dealer": "Dealer B",
                "Statuscheck": "Invalid stock",
                "GR to GI Days": 30,
                "ServiceTicket": True,
                "ServiceTicketAt": "2024-03-30T08:00:00.000Z",
                "ServiceTicketBy": "webapp",
            },
            "GHI789": {
                "Chassis No": "GHI789",
                "Customer": "Chloé Martin",
                "Model": "Caravan 18",
                "SAP Data": "Snowy Stock",
                "Scheduled Dealer": "Snowy Stock",
                "Statuscheck": "No Reference",
                "GR to GI Days": 5,
            },
            "JKL012": {
                "Chassis No": "JKL012",
                "Customer": "Dan Lee",
                "Model": "RV-20",
                "SAP Data": "Dealer C",
                "Scheduled Dealer": "Dealer C",
                "Statuscheck": "",
                "TransportCompany": "FastHaul",
                "GR to GI Days": "n/a",
            },
            "MNO345": {
                "Chassis No": "MNO345",
                "Customer": "Eve Park",
                "Model": "Camper 14",
                "SAP Data": "Dealer D",
                "Scheduled Dealer": "Dealer D",
                "Statuscheck": "OK",
                "GR to GI Days": 50,
                "OnHold": True,
                "OnHoldAt": "2024-03-31T10:00:00.000Z",
                "OnHoldBy": "webapp",
            },
        },
        "reallocation": {
            "ABC123": {
                "-e1": {"date": "01/03/2024", "reallocatedTo": "Dealer X", "customer": "Alice Smith", "model": "RV-20"},
                "-e2": {
                    "date": "15/03/2024",
                    "reallocatedTo": "Dealer Y",
                    "customer": "Alice Smith",
                    "model": "RV-20",
                    "issue": {"type": "Customer relocation"},
                },
            },
            "JKL012": {
                "-e1": {"date": "10/03/2024", "reallocatedTo": "Dealer Z"},
            },
        },
        "schedule": [
            {"Chassis": "ABC123", "Regent Production": "In Production"},
            {"Chassis": "JKL012", "Regent Production": "Finished"},
        ],
    }


class GatedStore(InMemoryRealtimeStore):
    """In-memory store whose patches block until ``release`` is called."""

    def __init__(self, initial=None) -> None:
        super().__init__(initial)
        self.gate = threading.Event()

    def patch(self, collection, key, fields) -> None:
        self.gate.wait(timeout=5)
        super().patch(collection, key, fields)

    def release(self) -> None:
        self.gate.set()


@pytest.fixture
def store() -> InMemoryRealtimeStore:
    return InMemoryRealtimeStore(seed_data())


@pytest.fixture
def workspace(store):
    ws = DispatchWorkspace(store, clock=lambda: FIXED_NOW, write_workers=2)
    ws.start()
    yield ws
    ws.stop()


@pytest.fixture
def resolved_entries():
    from dispatch_hub.services.reallocation import ReallocationResolver
    from dispatch_hub.services.resolver import resolve_dispatch_entries

    data = seed_data()
    resolver = ReallocationResolver.from_raw(data["reallocation"], data["schedule"])
    return resolve_dispatch_entries(data["Dispatch"], resolver)
