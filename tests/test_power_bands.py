# tests/test_power_bands.py

import pytest

from lighttools_handler.errors import NoMatchingRaysError
from lighttools_handler.power_bands import (
    PowerInterval, band_for, band_power, filter_choices, filter_records,
    parse_intervals, partition, select_cumulative,
)
from lighttools_handler.repository import RayRecord


def rec(index, power, source="A", surface="S1"):
    return RayRecord(index=index, power=power, source_name=source, final_surface=surface)


def worked_example():
    return [rec(1, 50.0, "A", "S1"), rec(2, 30.0, "B", "S1"), rec(3, 20.0, "A", "S2")]


def test_worked_example_source_filter():
    filtered = filter_records(worked_example(), source_filter="A")

    assert filtered.indices == (1, 3)
    assert filtered.total_power == pytest.approx(70.0)
    assert select_cumulative(filtered.ordered_records, filtered.total_power, 50) == (1,)
    assert band_for(filtered.ordered_records, filtered.total_power, PowerInterval(100, 50)) == (3,)
    assert band_for(filtered.ordered_records, filtered.total_power, PowerInterval(50, 0)) == (1,)


def test_filter_drops_records_with_missing_fields():
    records = [
        rec(1, 5.0),
        RayRecord(2, None, "A", "S1"),
        RayRecord(3, 9.0, None, "S1"),
        RayRecord(4, 7.0, "A", None),
        rec(5, 3.0),
    ]
    filtered = filter_records(records)

    assert filtered.indices == (1, 5)
    assert filtered.total_power == pytest.approx(8.0)


def test_filter_by_surface_and_wildcards():
    filtered = filter_records(worked_example(), surface_filter="S1")
    assert filtered.indices == (1, 2)

    everything = filter_records(worked_example(), "*", "*")
    assert everything.indices == (1, 2, 3)


def test_filter_orders_ties_by_index():
    records = [rec(1, 2.0), rec(2, 5.0), rec(3, 2.0), rec(4, 5.0)]
    assert filter_records(records).indices == (2, 4, 1, 3)


def test_filter_with_no_match_raises():
    with pytest.raises(NoMatchingRaysError):
        filter_records(worked_example(), source_filter="C")


def test_filter_choices_lists_usable_values_sorted():
    records = worked_example() + [RayRecord(4, 1.0, None, "S9")]
    sources, surfaces = filter_choices(records)

    assert sources == ["A", "B"]
    assert surfaces == ["S1", "S2"]


def test_select_bounds():
    filtered = filter_records([rec(i, p) for i, p in enumerate([4.0, 3.0, 2.0, 1.0], start=1)])
    ordered, total = filtered.ordered_records, filtered.total_power

    assert select_cumulative(ordered, total, 0) == ()
    assert select_cumulative(ordered, total, 1e-12) == ()
    assert select_cumulative(ordered, total, 100) == (1, 2, 3, 4)
    # 40% of 10 is reached exactly by the first ray
    assert select_cumulative(ordered, total, 40) == (1,)
    assert select_cumulative(ordered, total, 40.5) == (1, 2)


def test_select_is_a_monotone_prefix():
    powers = [7.0, 1.5, 3.25, 0.5, 9.0, 2.0, 2.0, 4.75]
    filtered = filter_records([rec(i, p) for i, p in enumerate(powers, start=1)])
    ordered, total = filtered.ordered_records, filtered.total_power

    previous = ()
    for pct in range(0, 101, 5):
        selected = select_cumulative(ordered, total, pct)
        assert selected == filtered.indices[:len(selected)]
        assert selected[:len(previous)] == previous
        previous = selected


def test_select_with_zero_total_power_is_empty():
    filtered = filter_records([rec(1, 0.0), rec(2, 0.0)])
    assert select_cumulative(filtered.ordered_records, filtered.total_power, 100) == ()


def test_partition_of_contiguous_intervals_is_disjoint_and_complete():
    powers = [12.0, 3.0, 8.0, 1.0, 6.0, 6.0, 0.25, 9.5, 4.0, 2.5]
    filtered = filter_records([rec(i, p) for i, p in enumerate(powers, start=1)])
    bands = partition(filtered, parse_intervals("[[100,70],[70,30],[30,0]]"))

    members = [set(b.member_indices) for b in bands]
    assert members[0].isdisjoint(members[1])
    assert members[0].isdisjoint(members[2])
    assert members[1].isdisjoint(members[2])
    assert set().union(*members) == set(filtered.indices)
    assert sum(band_power(filtered, b.member_indices) for b in bands) == pytest.approx(filtered.total_power)


def test_band_keeps_power_descending_order():
    filtered = filter_records([rec(1, 1.0), rec(2, 5.0), rec(3, 3.0), rec(4, 1.0)])
    band = band_for(filtered.ordered_records, filtered.total_power, PowerInterval(100, 40))
    assert band == (3, 1, 4)


def test_overlapping_intervals_give_overlapping_bands():
    filtered = filter_records([rec(i, float(10 - i)) for i in range(1, 6)])
    bands = partition(filtered, [PowerInterval(100, 0), PowerInterval(60, 0)])

    assert set(bands[1].member_indices) <= set(bands[0].member_indices)


def test_power_interval_validation():
    assert PowerInterval(100, 70).label() == "P100-70"
    assert PowerInterval(50, 50).label() == "P50-50"
    assert PowerInterval(72.5, 0).label() == "P72.5-0"

    with pytest.raises(ValueError):
        PowerInterval(30, 70)
    with pytest.raises(ValueError):
        PowerInterval(120, 0)
    with pytest.raises(ValueError):
        PowerInterval(10, -1)


def test_parse_intervals():
    assert parse_intervals("[[100,70],[70,30],[30,0]]") == [
        PowerInterval(100, 70), PowerInterval(70, 30), PowerInterval(30, 0),
    ]
    assert parse_intervals(" [ [ 90.5 , 10 ] ] ") == [PowerInterval(90.5, 10)]
    assert parse_intervals("[100,70]") == [PowerInterval(100, 70)]
    assert parse_intervals("100, 70") == [PowerInterval(100, 70)]
    assert parse_intervals("[]") == []
    assert parse_intervals("") == []


def test_parse_intervals_rejects_bad_input():
    with pytest.raises(ValueError):
        parse_intervals("not intervals")
    with pytest.raises(ValueError):
        parse_intervals("[[30,70]]")


@pytest.mark.parametrize("pct", [0.5, 12.5, 33.3, 50, 64.9, 90, 99.99])
def test_select_is_minimal_and_reaches_target(pct):
    powers = [0.3, 7.1, 2.2, 4.4, 0.9, 5.5, 1.25, 3.0, 6.8, 0.05]
    filtered = filter_records([rec(i, p) for i, p in enumerate(powers, start=1)])
    threshold = pct / 100.0 * filtered.total_power

    selected = select_cumulative(filtered.ordered_records, filtered.total_power, pct)
    power_of = {r.index: r.power for r in filtered.ordered_records}

    assert sum(power_of[i] for i in selected) >= threshold - 1e-9
    # Dropping the weakest member falls short of the target
    assert sum(power_of[i] for i in selected[:-1]) < threshold


def test_band_from_zero_is_the_upper_selection():
    filtered = filter_records([rec(i, p) for i, p in enumerate([3.0, 9.0, 1.0, 4.0], start=1)])
    for upper in (10, 45, 80, 100):
        assert band_for(filtered.ordered_records, filtered.total_power, PowerInterval(upper, 0)) == \
            select_cumulative(filtered.ordered_records, filtered.total_power, upper)
