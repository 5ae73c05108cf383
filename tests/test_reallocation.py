import logging

from dispatch_hub.schemas.dispatch import DealerCheck
from dispatch_hub.services.reallocation import ReallocationResolver, parse_reallocations, parse_schedule
from dispatch_hub.services.resolver import resolve_dispatch_entries


def test_latest_reallocation_and_dealer_check_ok():
    resolver = ReallocationResolver.from_raw(
        {
            "ABC123": {
                "e1": {"date": "01/03/2024", "reallocatedTo": "Dealer X"},
                "e2": {"date": "15/03/2024", "reallocatedTo": "Dealer Y"},
            }
        }
    )
    assert resolver.target_for("ABC123") == "Dealer Y"

    entries = resolve_dispatch_entries(
        {"ABC123": {"Chassis No": "ABC123", "SAP Data": "Dealer Y", "Scheduled Dealer": "Dealer Y"}},
        resolver,
    )
    assert entries["ABC123"].reallocated_to == "Dealer Y"
    assert entries["ABC123"].dealer_check is DealerCheck.OK


def test_finished_production_is_excluded():
    resolver = ReallocationResolver.from_raw(
        {"JKL012": {"e1": {"date": "10/03/2024", "reallocatedTo": "Dealer Z"}}},
        [{"Chassis": "JKL012", "Regent Production": "Finished"}],
    )
    assert resolver.is_excluded("JKL012")
    assert resolver.target_for("JKL012") is None
    assert resolver.targets() == {}
    assert resolver.current_reallocations() == []


def test_custom_finished_label():
    resolver = ReallocationResolver.from_raw(
        {"C1": {"e1": {"date": "10/03/2024", "reallocatedTo": "Dealer Z"}}},
        {"0": {"Chassis": "C1", "Regent Production": "Done"}},
        finished_label="Done",
    )
    assert resolver.target_for("C1") is None


def test_current_reallocations_carry_production_status():
    resolver = ReallocationResolver.from_raw(
        {
            "A1": {"e1": {"date": "01/01/2024", "reallocatedTo": "Dealer Q", "issue": {"type": "Damage"}}},
            "B2": {"e1": {"submitTime": "02/01/2024", "reallocatedTo": "Dealer R"}},
        },
        [{"Chassis": "A1", "Regent Production": "In Production"}],
    )
    items = {item.chassis_number: item for item in resolver.current_reallocations()}
    assert items["A1"].regent_production == "In Production"
    assert items["A1"].entry_id == "e1"
    assert items["A1"].issue.type == "Damage"
    assert items["B2"].regent_production == "N/A"


def test_blank_target_resolves_to_empty_string():
    resolver = ReallocationResolver.from_raw({"A1": {"e1": {"date": "01/01/2024"}}})
    assert resolver.target_for("A1") == ""
    assert resolver.target_for("missing") is None


def test_malformed_snapshots_are_skipped(caplog):
    caplog.set_level(logging.WARNING)
    parsed = parse_reallocations({"A1": "not-a-dict", "B2": {"e1": 5, "e2": {"date": "01/01/2024"}}})
    assert list(parsed) == ["B2"]
    assert list(parsed["B2"]) == ["e2"]
    assert parse_reallocations(None) == {}

    schedule = parse_schedule([{"Chassis": "A1"}, {"Regent Production": "x"}, "junk"])
    assert [row.chassis for row in schedule] == ["A1"]
    assert parse_schedule(42) == []


def test_resolver_skips_records_without_chassis(caplog):
    caplog.set_level(logging.WARNING)
    resolver = ReallocationResolver({})
    entries = resolve_dispatch_entries({"K1": {"Customer": "No chassis"}, "K2": "junk"}, resolver)
    # the dispatch key stands in for a missing chassis field
    assert list(entries) == ["K1"]
    assert entries["K1"].dispatch_key == "K1"
    assert any("K2" in rec.message for rec in caplog.records)
