"""
Trip cost model: the real operating cost of one run of a service.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from utils.errors import InvalidRateConfig

PENNY = Decimal('0.01')

RATE_FIELDS = (
    'driver_wage_per_hour',
    'fuel_per_mile',
    'depreciation_per_mile',
    'insurance_per_trip',
    'maintenance_per_mile',
    'overhead_per_trip',
)


def to_money(value):
    """Round to whole pennies, half up."""
    return Decimal(value).quantize(PENNY, rounding=ROUND_HALF_UP)


def _as_decimal(value, name):
    if value is None:
        raise InvalidRateConfig(f"{name} is not configured.", field=name)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidRateConfig(f"{name} is not a number.", field=name, value=value)


@dataclass(frozen=True)
class TripCostBreakdown:
    driver_wages: Decimal
    fuel_cost: Decimal
    vehicle_depreciation: Decimal
    insurance_allocation: Decimal
    maintenance_allocation: Decimal
    overhead_allocation: Decimal
    total_trip_cost: Decimal
    distance_miles: Decimal
    duration_hours: Decimal

    def as_dict(self):
        return {key: str(value) for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data):
        return cls(**{key: Decimal(value) for key, value in data.items()})


def calculate_trip_cost(distance_miles, duration_hours, rates):
    """
    Derive the cost of one run from route distance/duration and a rate table.

    Args:
        distance_miles: Route distance in miles (must be > 0)
        duration_hours: Scheduled duration in hours (must be > 0)
        rates: Object exposing the RATE_FIELDS attributes (e.g. CostRateTable)

    Returns:
        TripCostBreakdown whose total is the sum of the six rounded components.

    Raises:
        InvalidRateConfig: a rate is missing or negative, or distance/duration <= 0.
    """
    distance = _as_decimal(distance_miles, 'distance_miles')
    duration = _as_decimal(duration_hours, 'duration_hours')
    if distance <= 0:
        raise InvalidRateConfig("Route distance must be greater than zero.", distance_miles=distance)
    if duration <= 0:
        raise InvalidRateConfig("Scheduled duration must be greater than zero.", duration_hours=duration)

    values = {}
    for name in RATE_FIELDS:
        value = _as_decimal(getattr(rates, name, None), name)
        if value < 0:
            raise InvalidRateConfig(f"{name} cannot be negative.", field=name, value=value)
        values[name] = value

    components = {
        'driver_wages': to_money(values['driver_wage_per_hour'] * duration),
        'fuel_cost': to_money(values['fuel_per_mile'] * distance),
        'vehicle_depreciation': to_money(values['depreciation_per_mile'] * distance),
        'insurance_allocation': to_money(values['insurance_per_trip']),
        'maintenance_allocation': to_money(values['maintenance_per_mile'] * distance),
        'overhead_allocation': to_money(values['overhead_per_trip']),
    }
    return TripCostBreakdown(
        total_trip_cost=sum(components.values(), Decimal('0.00')),
        distance_miles=distance,
        duration_hours=duration,
        **components,
    )


def trip_cost_for_timetable(timetable):
    route = timetable.route
    return calculate_trip_cost(route.distance_miles, route.duration_hours, route.rates)
