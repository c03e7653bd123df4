import copy

from hvac_agent.dialogue.slots import (
    clear_path,
    empty_slots,
    format_address,
    get_path,
    merge_slots,
    missing_fields,
    set_path,
)


def all_null_update():
    return {
        "full_name": None,
        "callback_number": "   ",
        "service_address": {"line1": None, "city": "", "state": None, "zip": None},
        "symptoms": [],
        "thermostat": {"setpoint": None, "current": None},
        "preferred_date": None,
        "preferred_window": None,
        "pricing_disclosed": None,
        "emergency": False,
    }


def test_merge_with_all_null_update_is_identity(jane_slots):
    assert merge_slots(jane_slots, all_null_update()) == jane_slots


def test_merge_prefers_new_non_null_values(jane_slots):
    merged = merge_slots(jane_slots, {"full_name": "Janet Doe", "service_address": {"zip": "30302"}})

    assert merged["full_name"] == "Janet Doe"
    assert merged["service_address"]["zip"] == "30302"
    assert merged["service_address"]["city"] == "Atlanta"


def test_merge_does_not_mutate_inputs(jane_slots):
    original = copy.deepcopy(jane_slots)
    update = {"service_address": {"city": "Decatur"}, "symptoms": ["no cooling"]}

    merged = merge_slots(jane_slots, update)
    merged["service_address"]["line1"] = "changed"

    assert jane_slots == original
    assert update == {"service_address": {"city": "Decatur"}, "symptoms": ["no cooling"]}


def test_lists_replaced_only_when_update_is_non_empty():
    slots = merge_slots(empty_slots(), {"symptoms": ["no cooling"]})

    assert merge_slots(slots, {"symptoms": []})["symptoms"] == ["no cooling"]
    assert merge_slots(slots, {"symptoms": ["icing", "noise"]})["symptoms"] == ["icing", "noise"]


def test_pricing_disclosure_is_never_undone(jane_slots):
    assert merge_slots(jane_slots, {"pricing_disclosed": False})["pricing_disclosed"] is True


def test_merge_is_associative_per_field():
    a = {"full_name": "Jane", "service_address": {"city": "Atlanta"}}
    b = {"full_name": None, "service_address": {"zip": "30301"}, "symptoms": ["noise"]}
    c = {"callback_number": "404-444-2544", "service_address": {"city": None, "line1": "1 Elm St"}}

    left = merge_slots(merge_slots(a, b), c)
    right = merge_slots(a, merge_slots(b, c))

    assert left == right
    assert left["service_address"] == {"city": "Atlanta", "zip": "30301", "line1": "1 Elm St"}


def test_clear_path_resets_whole_address(jane_slots):
    cleared = clear_path(jane_slots, "service_address")

    assert all(value is None for value in cleared["service_address"].values())
    assert jane_slots["service_address"]["line1"] == "123 Main St"


def test_clear_schedule_resets_date_time_and_window(jane_slots):
    cleared = clear_path(set_path(jane_slots, "preferred_time", "09:00"), "preferred_schedule")

    assert cleared["preferred_date"] is None
    assert cleared["preferred_time"] is None
    assert cleared["preferred_window"] is None


def test_dotted_paths(jane_slots):
    updated = set_path(jane_slots, "service_address.zip", "30309")

    assert get_path(updated, "service_address.zip") == "30309"
    assert get_path(jane_slots, "service_address.zip") == "30301"
    assert get_path(updated, "thermostat.setpoint") is None
    assert get_path(updated, "full_name.first") is None


def test_missing_fields_in_asking_order():
    assert missing_fields(empty_slots()) == [
        "full_name",
        "callback_number",
        "service_address",
        "pricing_disclosed",
        "preferred_schedule",
    ]


def test_missing_fields_empty_when_complete(jane_slots):
    assert missing_fields(jane_slots) == []


def test_format_address_skips_blank_parts():
    address = {"line1": "123 Main St", "line2": None, "city": "Atlanta", "state": "GA", "zip": "30301"}

    assert format_address(address) == "123 Main St, Atlanta, GA 30301"
