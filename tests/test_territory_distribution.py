"""Tests for territory distribution, boundary parsing and division (no database)."""
from types import SimpleNamespace

import pytest

from app.congregation.modules.territories.distribution import (
    MAX_DIVISIONS,
    centroid,
    distribute,
    group_loads,
    natural_key,
    parse_boundary,
    plan_division,
    split_points,
)


def _t(number, difficulty="medium", households=0):
    return SimpleNamespace(number=number, difficulty=difficulty, household_count=households)


def test_equal_is_round_robin_in_input_order():
    territories = [_t(str(i)) for i in range(1, 8)]
    result = distribute(territories, ["A", "B", "C"], "equal")
    assert [t.number for t in result["A"]] == ["1", "4", "7"]
    assert [t.number for t in result["B"]] == ["2", "5"]
    assert [t.number for t in result["C"]] == ["3", "6"]


def test_equal_counts_differ_by_at_most_one():
    territories = [_t(str(i)) for i in range(10)]
    result = distribute(territories, [1, 2, 3, 4], "equal")
    sizes = sorted(len(v) for v in result.values())
    assert sizes == [2, 2, 3, 3]
    assert sum(sizes) == 10


def test_difficulty_balances_weighted_load():
    territories = [_t("1", "hard"), _t("2", "hard"), _t("3", "easy"), _t("4", "easy"), _t("5", "medium"), _t("6", "medium")]
    result = distribute(territories, ["A", "B"], "difficulty")
    loads = group_loads(result, "difficulty")
    assert loads["A"] == loads["B"] == 6
    assert sum(len(v) for v in result.values()) == 6


def test_size_places_largest_first_and_ties_go_to_earlier_group():
    territories = [_t("1", households=10), _t("2", households=40), _t("3", households=30), _t("4", households=20)]
    result = distribute(territories, ["A", "B"], "size")
    assert [t.number for t in result["A"]] == ["2", "1"]
    assert [t.number for t in result["B"]] == ["3", "4"]


def test_distribute_rejects_unknown_strategy_and_missing_groups():
    with pytest.raises(ValueError):
        distribute([_t("1")], ["A"], "random")
    with pytest.raises(ValueError):
        distribute([_t("1")], [], "equal")


def test_natural_key_orders_numbers_numerically():
    numbers = ["10", "2", "4-B", "4-A", "1"]
    assert sorted(numbers, key=natural_key) == ["1", "2", "4-A", "4-B", "10"]


def test_parse_boundary_json_points_and_geojson():
    pts = parse_boundary("[[-80.1, 25.7], [-80.2, 25.7], [-80.2, 25.8]]")
    assert pts == [[-80.1, 25.7], [-80.2, 25.7], [-80.2, 25.8]]
    poly = parse_boundary('{"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]}')
    assert len(poly) == 4


def test_parse_boundary_kml_coordinates():
    kml = "<Polygon><coordinates>0,0,0 1,0,0 1,1,0 0,1,0</coordinates></Polygon>"
    assert parse_boundary(kml) == [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]


def test_parse_boundary_errors():
    assert parse_boundary("") is None
    with pytest.raises(ValueError):
        parse_boundary("[[0, 0], [1, 1]]")
    with pytest.raises(ValueError):
        parse_boundary("[[0, 0], [1, 1], [500, 0]]")
    with pytest.raises(ValueError):
        parse_boundary("{not json")


def test_centroid_ignores_closing_point():
    assert centroid([[0, 0], [2, 0], [2, 2], [0, 2], [0, 0]]) == (1.0, 1.0)


def test_division_produces_exactly_k_lettered_children():
    boundary = [[0, 0], [1, 0], [2, 0], [2, 1], [2, 2], [1, 2], [0, 2], [0, 1]]
    plans = plan_division("12", "Oak Street", boundary, 3, estimated_hours=5, household_count=100)
    assert [p.number for p in plans] == ["12-A", "12-B", "12-C"]
    assert [p.name for p in plans] == ["Oak Street - Part A", "Oak Street - Part B", "Oak Street - Part C"]
    assert all(p.estimated_hours == 2 for p in plans)
    assert all(p.household_count == 34 for p in plans)
    assert plans[0].boundary[0] == plans[0].boundary[-1]


def test_division_without_boundary_keeps_parent_center():
    plans = plan_division("7", "Harbor", None, 2, center=(25.0, -80.0))
    assert len(plans) == 2
    assert all(p.boundary is None for p in plans)
    assert all(p.center == (25.0, -80.0) for p in plans)


def test_division_of_small_boundary_gives_no_child_the_parent_polygon():
    triangle = [[0, 0], [1, 0], [1, 1], [0, 0]]
    plans = plan_division("5", "Elm", triangle, 4, center=(0.5, 0.5))
    assert [p.number for p in plans] == ["5-A", "5-B", "5-C", "5-D"]
    assert all(p.boundary is None for p in plans)
    assert all(p.center == (0.5, 0.5) for p in plans)

    assert split_points([[0, 0], [1, 0], [1, 1]], 2) == [[], []]


def test_division_limits():
    with pytest.raises(ValueError):
        plan_division("1", "X", None, 1)
    with pytest.raises(ValueError):
        plan_division("1", "X", None, MAX_DIVISIONS + 1)
