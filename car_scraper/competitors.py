"""Competitor lookup within MSRP price bands."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from .models import CarRecord

# (band, exclusive upper bound); the last band is open ended
PRICE_BANDS = (
    ("budget", 30000),
    ("midrange", 50000),
    ("premium", 80000),
    ("luxury", None),
)

MAX_COMPETITORS = 3
MAX_PRICE_DELTA = 15000


def price_band(price: float) -> str:
    for name, upper in PRICE_BANDS:
        if upper is None or price < upper:
            return name
    raise AssertionError("unreachable")


def group_by_price(cars: Sequence[CarRecord]) -> Dict[str, List[CarRecord]]:
    """Partition records into the four price bands, keeping discovery order."""
    groups: Dict[str, List[CarRecord]] = {name: [] for name, _ in PRICE_BANDS}
    for car in cars:
        groups[price_band(car.starting_msrp)].append(car)
    return groups


def _combined_mpg(car: CarRecord) -> float:
    value = car.fuel_economy.get("combined") if isinstance(car.fuel_economy, dict) else None
    return value if isinstance(value, (int, float)) else 0


def _horsepower(car: CarRecord) -> float:
    value = car.performance.get("horsepower") if isinstance(car.performance, dict) else None
    return value if isinstance(value, (int, float)) else 0


def get_advantages(competitor: CarRecord, car: CarRecord) -> List[str]:
    advantages = []
    if _horsepower(competitor) > _horsepower(car):
        advantages.append("More horsepower")
    if len(competitor.features or []) > len(car.features or []):
        advantages.append("More features")
    if _combined_mpg(competitor) > _combined_mpg(car):
        advantages.append("Better fuel economy")
    return advantages


def find_competitors(car: CarRecord, groups: Dict[str, List[CarRecord]]) -> List[Dict[str, Any]]:
    """Up to three same-band cars from other manufacturers within $15,000."""
    price = car.starting_msrp
    competitors = []
    for other in groups[price_band(price)]:
        if other.manufacturer == car.manufacturer:
            continue
        if abs(other.starting_msrp - price) >= MAX_PRICE_DELTA:
            continue
        competitors.append(
            {
                "manufacturer": other.manufacturer,
                "model": other.model,
                "price_difference": round(other.starting_msrp - price),
                "key_advantages": get_advantages(other, car),
            }
        )
        if len(competitors) >= MAX_COMPETITORS:
            break
    return competitors


def add_competitor_analysis(cars: Sequence[CarRecord]) -> Sequence[CarRecord]:
    groups = group_by_price(cars)
    for car in cars:
        car.competitors = find_competitors(car, groups)
    return cars
