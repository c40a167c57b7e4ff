"""
Solidarity fare calculator.

The trip's real cost is split across the people riding it, bounded by the
route's fare floor and affordability ceiling. `compute_fare` picks the
formula for the timetable's pricing model from FARE_FORMULAS.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, ROUND_CEILING

from django.conf import settings

from timetables.costing import to_money
from utils.errors import InvalidRateConfig

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

TIER_MULTIPLIERS = {
    'adult': Decimal('1.00'),
    'child': Decimal('0.50'),
    'concessionary': Decimal('0.50'),
    'wheelchair': Decimal('1.00'),
    'companion': Decimal('0.00'),
}

LADDER_STEPS = (1, 2, 4, 6, 8, 10, 12, 14, 16, 20, 24, 32)


@dataclass(frozen=True)
class PricingConfig:
    pricing_model: str
    minimum_fare_floor: Decimal
    maximum_acceptable_fare: Decimal
    non_member_surcharge_percent: Decimal = ZERO
    surplus_reserves_percent: Decimal = Decimal('40')
    surplus_business_percent: Decimal = Decimal('20')
    surplus_dividend_percent: Decimal = Decimal('40')

    @classmethod
    def for_timetable(cls, timetable):
        return cls(
            pricing_model=timetable.pricing_model,
            minimum_fare_floor=Decimal(timetable.minimum_fare_floor),
            maximum_acceptable_fare=Decimal(timetable.maximum_acceptable_fare),
            non_member_surcharge_percent=Decimal(timetable.non_member_surcharge_percent),
            surplus_reserves_percent=Decimal(timetable.surplus_reserves_percent),
            surplus_business_percent=Decimal(timetable.surplus_business_percent),
            surplus_dividend_percent=Decimal(timetable.surplus_dividend_percent),
        )


@dataclass(frozen=True)
class FareStructure:
    pricing_model: str
    total_trip_cost: Decimal
    current_passengers: int
    available_seats: int
    break_even_passengers: int
    break_even_fare_per_person: Decimal
    current_fare_per_person: Decimal
    fare_at_capacity: Decimal
    savings_vs_break_even: Decimal
    projected_surplus: Decimal

    def as_dict(self):
        return {
            'pricing_model': self.pricing_model,
            'total_trip_cost': str(self.total_trip_cost),
            'current_passengers': self.current_passengers,
            'available_seats': self.available_seats,
            'break_even_passengers': self.break_even_passengers,
            'break_even_fare_per_person': str(self.break_even_fare_per_person),
            'current_fare_per_person': str(self.current_fare_per_person),
            'fare_at_capacity': str(self.fare_at_capacity),
            'savings_vs_break_even': str(self.savings_vs_break_even),
            'projected_surplus': str(self.projected_surplus),
        }


@dataclass(frozen=True)
class FareStep:
    passenger_count: int
    fare_per_passenger: Decimal
    total_revenue: Decimal
    is_break_even: bool
    is_current: bool

    def as_dict(self):
        return {
            'passenger_count': self.passenger_count,
            'fare_per_passenger': str(self.fare_per_passenger),
            'total_revenue': str(self.total_revenue),
            'is_break_even': self.is_break_even,
            'is_current': self.is_current,
        }


@dataclass(frozen=True)
class FareQuote:
    timetable_id: int
    service_date: object
    passenger_tier: str
    is_member: bool
    trip_cost: object
    fare: FareStructure
    quoted_fare: Decimal
    valid_until: object
    fare_ladder: tuple = field(default_factory=tuple)
    fare_reduction_message: str = None
    community_impact_message: str = None

    def as_dict(self):
        return {
            'timetable_id': self.timetable_id,
            'service_date': str(self.service_date),
            'passenger_tier': self.passenger_tier,
            'is_member': self.is_member,
            'quoted_fare': str(self.quoted_fare),
            'trip_cost_breakdown': self.trip_cost.as_dict(),
            'fare': self.fare.as_dict(),
            'fare_ladder': [step.as_dict() for step in self.fare_ladder],
            'fare_reduction_message': self.fare_reduction_message,
            'community_impact_message': self.community_impact_message,
            'valid_until': self.valid_until.isoformat(),
        }


def clamp(value, low, high):
    return max(low, min(high, value))


def tier_multiplier(tier):
    try:
        return TIER_MULTIPLIERS[tier]
    except KeyError:
        raise ValueError(f"Unknown passenger tier: {tier!r}")


def break_even_passengers(total_trip_cost, maximum_acceptable_fare):
    """Occupancy at which an equal split sits exactly at the affordability ceiling."""
    if maximum_acceptable_fare <= 0:
        raise InvalidRateConfig("Maximum acceptable fare must be greater than zero.")
    passengers = (Decimal(total_trip_cost) / Decimal(maximum_acceptable_fare)).to_integral_value(
        rounding=ROUND_CEILING
    )
    return max(1, int(passengers))


def _per_head_split(config, total_trip_cost, current_passengers, available_seats, break_even_fare):
    per_head = clamp(
        total_trip_cost / max(1, current_passengers),
        config.minimum_fare_floor, config.maximum_acceptable_fare
    )
    at_capacity = clamp(
        total_trip_cost / max(1, current_passengers + available_seats),
        config.minimum_fare_floor, config.maximum_acceptable_fare
    )
    return to_money(per_head), to_money(at_capacity)


def _fixed_price(config, total_trip_cost, current_passengers, available_seats, break_even_fare):
    price = to_money(clamp(break_even_fare, config.minimum_fare_floor, config.maximum_acceptable_fare))
    return price, price


FARE_FORMULAS = {
    'fixed': _fixed_price,
    'dynamic': _per_head_split,
    'cooperative': _per_head_split,
}


def compute_fare(config, total_trip_cost, current_passengers, available_seats):
    """
    Fare structure for a trip at the given occupancy.

    Args:
        config: PricingConfig for the timetable
        total_trip_cost: TripCostBreakdown.total_trip_cost
        current_passengers: Riders counted by the resolver
        available_seats: Seats still free

    Raises:
        InvalidRateConfig: unknown pricing model or inverted fare bounds.
    """
    formula = FARE_FORMULAS.get(config.pricing_model)
    if formula is None:
        raise InvalidRateConfig(f"Unknown pricing model: {config.pricing_model!r}")
    if config.minimum_fare_floor > config.maximum_acceptable_fare:
        raise InvalidRateConfig("Minimum fare floor is above the maximum acceptable fare.")
    if current_passengers < 0 or available_seats < 0:
        raise ValueError("Passenger and seat counts cannot be negative.")

    total_trip_cost = Decimal(total_trip_cost)
    break_even_count = break_even_passengers(total_trip_cost, config.maximum_acceptable_fare)
    break_even_fare = to_money(total_trip_cost / break_even_count)
    current_fare, capacity_fare = formula(
        config, total_trip_cost, current_passengers, available_seats, break_even_fare
    )

    return FareStructure(
        pricing_model=config.pricing_model,
        total_trip_cost=to_money(total_trip_cost),
        current_passengers=current_passengers,
        available_seats=available_seats,
        break_even_passengers=break_even_count,
        break_even_fare_per_person=break_even_fare,
        current_fare_per_person=current_fare,
        fare_at_capacity=capacity_fare,
        savings_vs_break_even=max(ZERO, break_even_fare - current_fare),
        projected_surplus=to_money(max(ZERO, current_fare * current_passengers - total_trip_cost)),
    )


def quoted_fare(structure, tier, is_member, non_member_surcharge_percent=ZERO):
    surcharge = Decimal('1') if is_member else Decimal('1') + Decimal(non_member_surcharge_percent) / HUNDRED
    return to_money(structure.current_fare_per_person * tier_multiplier(tier) * surcharge)


def surplus_amount(confirmed_fares, total_trip_cost):
    """Confirmed fares collected above the trip cost; never negative."""
    collected = sum((Decimal(fare) for fare in confirmed_fares), ZERO)
    return to_money(max(ZERO, collected - Decimal(total_trip_cost)))


def fare_ladder(config, total_trip_cost, capacity, current_passengers):
    """How the per-head fare falls as more riders join."""
    counts = {step for step in LADDER_STEPS if step <= capacity}
    counts.add(capacity)
    if 0 < current_passengers <= capacity:
        counts.add(current_passengers)

    steps = []
    for count in sorted(counts):
        fare = compute_fare(config, total_trip_cost, count, capacity - count).current_fare_per_person
        revenue = to_money(fare * count)
        steps.append(FareStep(
            passenger_count=count,
            fare_per_passenger=fare,
            total_revenue=revenue,
            is_break_even=revenue >= Decimal(total_trip_cost),
            is_current=count == current_passengers,
        ))
    return tuple(steps)


def fare_reduction_message(config, structure, tier):
    if structure.available_seats <= 0:
        return None
    if structure.current_passengers >= structure.break_even_passengers + 5:
        return None
    next_structure = compute_fare(
        config, structure.total_trip_cost,
        structure.current_passengers + 1, structure.available_seats - 1
    )
    if next_structure.current_fare_per_person >= structure.current_fare_per_person:
        return None
    next_fare = to_money(next_structure.current_fare_per_person * tier_multiplier(tier))
    return f"Book now! Your fare drops to £{next_fare} when one more passenger joins"


def community_impact_message(config, structure):
    if structure.projected_surplus <= 0:
        return None
    if config.pricing_model == 'cooperative':
        share = to_money(structure.projected_surplus * config.surplus_business_percent / HUNDRED)
        return f"This trip is generating £{share} for the cooperative commonwealth"
    return f"This trip is generating £{structure.projected_surplus} towards the operator's reserves"


def build_quote(config, trip_cost, capacity, current_passengers, tier, is_member, now,
                timetable_id=None, service_date=None):
    """Non-binding fare preview for a passenger tier at the given occupancy."""
    current_passengers = min(current_passengers, capacity)
    structure = compute_fare(
        config, trip_cost.total_trip_cost, current_passengers, capacity - current_passengers
    )
    return FareQuote(
        timetable_id=timetable_id,
        service_date=service_date,
        passenger_tier=tier,
        is_member=is_member,
        trip_cost=trip_cost,
        fare=structure,
        quoted_fare=quoted_fare(structure, tier, is_member, config.non_member_surcharge_percent),
        valid_until=now + timedelta(minutes=settings.FARE_QUOTE_VALID_MINUTES),
        fare_ladder=fare_ladder(config, trip_cost.total_trip_cost, capacity, current_passengers),
        fare_reduction_message=fare_reduction_message(config, structure, tier),
        community_impact_message=community_impact_message(config, structure),
    )
