"""
Territory distribution and division.

Pure functions over territory-like objects (`number`, `difficulty`, `household_count`)
so they can be exercised without a database.
"""
from __future__ import annotations

import json
import math
import re
import string
from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

T = TypeVar("T")

STRATEGIES = ("equal", "difficulty", "size")
DIFFICULTY_WEIGHTS = {"easy": 1, "medium": 2, "hard": 3}
MIN_DIVISIONS = 2
MAX_DIVISIONS = len(string.ascii_uppercase)

_COORDS_BLOCK_RE = re.compile(r"<coordinates[^>]*>([\s\S]*?)</coordinates>", re.I)
_NUMBER_PART_RE = re.compile(r"(\d+)")


def natural_key(number: str) -> list[Any]:
    """Sort key so "2" < "10" and "4-A" < "4-B"."""
    parts = _NUMBER_PART_RE.split(number or "")
    return [int(p) if p.isdigit() else p.lower() for p in parts]


def territory_weight(territory: Any, strategy: str) -> int:
    if strategy == "difficulty":
        return DIFFICULTY_WEIGHTS.get(territory.difficulty or "medium", 2)
    if strategy == "size":
        return int(territory.household_count or 0)
    return 1


def distribute(territories: Sequence[T], groups: Sequence[Hashable], strategy: str = "equal") -> dict[Hashable, list[T]]:
    """
    Partition `territories` across `groups`.

    equal: round robin in input order.
    difficulty/size: heaviest first (stable), each to the group with the lowest
    (load, territory count, position in `groups`).
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown distribution strategy '{strategy}'.")
    if not groups:
        raise ValueError("No groups available.")

    result: dict[Hashable, list[T]] = {g: [] for g in groups}
    if strategy == "equal":
        for i, t in enumerate(territories):
            result[groups[i % len(groups)]].append(t)
        return result

    loads = [0] * len(groups)
    ordered = sorted(territories, key=lambda t: territory_weight(t, strategy), reverse=True)
    for t in ordered:
        idx = min(range(len(groups)), key=lambda i: (loads[i], len(result[groups[i]]), i))
        result[groups[idx]].append(t)
        loads[idx] += territory_weight(t, strategy)
    return result


def group_loads(distribution: dict[Hashable, list[Any]], strategy: str) -> dict[Hashable, int]:
    return {g: sum(territory_weight(t, strategy) for t in ts) for g, ts in distribution.items()}


# --- boundaries -------------------------------------------------------------


def _pairs(values: Any) -> list[list[float]]:
    out = []
    for p in values:
        if not isinstance(p, (list, tuple)) or len(p) < 2:
            raise ValueError("Each boundary point needs a longitude and a latitude.")
        out.append([float(p[0]), float(p[1])])
    return out


def _from_json(data: Any) -> list[list[float]]:
    if isinstance(data, dict):
        if data.get("type") == "Feature":
            return _from_json(data.get("geometry") or {})
        if data.get("type") == "Polygon":
            rings = data.get("coordinates") or []
            return _pairs(rings[0]) if rings else []
        raise ValueError("Only Polygon geometries are supported.")
    if isinstance(data, list):
        return _pairs(data)
    raise ValueError("Boundary JSON must be a list of points or a Polygon.")


def parse_boundary(text: str | None) -> list[list[float]] | None:
    """
    Accepts JSON (point list, GeoJSON Polygon or Feature) or KML coordinate text
    ("lng,lat[,alt]" tuples separated by whitespace). Returns [[lng, lat], ...].
    """
    raw = (text or "").strip()
    if not raw:
        return None
    if raw[0] in "[{":
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ValueError(f"Boundary JSON is invalid: {e}") from e
        points = _from_json(data)
    else:
        m = _COORDS_BLOCK_RE.search(raw)
        if m:
            raw = m.group(1)
        points = []
        for token in raw.split():
            parts = token.split(",")
            if len(parts) < 2:
                raise ValueError(f"Invalid coordinate '{token}'; expected lng,lat.")
            try:
                points.append([float(parts[0]), float(parts[1])])
            except ValueError as e:
                raise ValueError(f"Invalid coordinate '{token}'; expected lng,lat.") from e
    if len(points) < 3:
        raise ValueError("A boundary needs at least three points.")
    for lng, lat in points:
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            raise ValueError("Boundary coordinates are out of range.")
    return points


def open_ring(points: list[list[float]]) -> list[list[float]]:
    if len(points) > 1 and points[0] == points[-1]:
        return points[:-1]
    return points


def close_ring(points: list[list[float]]) -> list[list[float]]:
    if points and points[0] != points[-1]:
        return points + [points[0]]
    return points


def centroid(points: list[list[float]]) -> tuple[float, float] | None:
    """(lat, lng) average of the distinct points."""
    pts = open_ring(points or [])
    if not pts:
        return None
    lat = sum(p[1] for p in pts) / len(pts)
    lng = sum(p[0] for p in pts) / len(pts)
    return lat, lng


# --- division ---------------------------------------------------------------


@dataclass(frozen=True)
class SubTerritoryPlan:
    number: str
    name: str
    description: str
    boundary: list[list[float]] | None
    center: tuple[float, float] | None
    estimated_hours: int | None
    household_count: int | None


def split_points(points: list[list[float]], k: int) -> list[list[list[float]]]:
    """
    Split a point list into `k` contiguous slices. Neighbouring slices share their
    joining point; the last slice runs to the end. When there are fewer than two
    points per slice no slice can form a polygon, so all of them come back empty.
    """
    n = len(points)
    per = n // k
    if per < 2:
        return [[] for _ in range(k)]
    out = []
    for i in range(k):
        start = i * per
        end = n if i == k - 1 else (i + 1) * per + 1
        out.append(points[start:end])
    return out


def _ceil_div(value: int | None, k: int) -> int | None:
    if value is None:
        return None
    return math.ceil(value / k)


def plan_division(
    number: str,
    name: str,
    boundary: list[list[float]] | None,
    k: int,
    *,
    estimated_hours: int | None = None,
    household_count: int | None = None,
    center: tuple[float, float] | None = None,
) -> list[SubTerritoryPlan]:
    """Exactly `k` lettered sub-territories; slices with fewer than three points get no boundary."""
    if not MIN_DIVISIONS <= k <= MAX_DIVISIONS:
        raise ValueError(f"Divisions must be between {MIN_DIVISIONS} and {MAX_DIVISIONS}.")

    slices = split_points(open_ring(boundary or []), k)
    plans = []
    for i, pts in enumerate(slices):
        letter = string.ascii_uppercase[i]
        sub_boundary = close_ring(pts) if len(pts) >= 3 else None
        plans.append(
            SubTerritoryPlan(
                number=f"{number}-{letter}",
                name=f"{name} - Part {letter}",
                description=f"Sub-territory {i + 1} of {name}",
                boundary=sub_boundary,
                center=centroid(pts) if sub_boundary else center,
                estimated_hours=_ceil_div(estimated_hours, k),
                household_count=_ceil_div(household_count, k),
            )
        )
    return plans
