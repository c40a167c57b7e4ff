"""
Surplus allocator and member dividend ledger.

Runs once per service instance after it completes. Surplus is only ever
computed from confirmed fare snapshots.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_DOWN

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from bookings.models import Booking, FareSnapshot
from bookings.pricing import PricingConfig, surplus_amount
from timetables.costing import PENNY, to_money, trip_cost_for_timetable
from timetables.models import ServiceInstance, Timetable
from utils.errors import AlreadyAllocated, ServiceNotComplete
from .models import (
    CooperativeMember, SurplusAllocation, MemberDividendLedgerEntry, RouteSurplusPool, SurplusPoolTransaction,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')
TERMINAL_STATUSES = (Booking.CANCELLED, Booking.NO_SHOW, Booking.COMPLETED)
CHARGEABLE_STATUSES = (Booking.CONFIRMED, Booking.COMPLETED, Booking.NO_SHOW)
PATRONAGE_STATUSES = (Booking.CONFIRMED, Booking.COMPLETED)


@dataclass(frozen=True)
class SurplusSplit:
    to_reserves: Decimal
    to_dividends: Decimal
    to_commonwealth: Decimal
    reserves_percent: Decimal
    business_percent: Decimal
    dividend_percent: Decimal


def split_surplus(amount, config):
    """
    Cooperative pricing splits by the configured percentages; other models
    keep the whole surplus in reserves. The commonwealth share absorbs
    rounding so the three parts always add up to the surplus.
    """
    amount = to_money(amount)
    if config.pricing_model != Timetable.PRICING_COOPERATIVE:
        return SurplusSplit(
            to_reserves=amount, to_dividends=Decimal('0.00'), to_commonwealth=Decimal('0.00'),
            reserves_percent=HUNDRED, business_percent=Decimal('0'), dividend_percent=Decimal('0'),
        )
    to_reserves = to_money(amount * config.surplus_reserves_percent / HUNDRED)
    to_dividends = to_money(amount * config.surplus_dividend_percent / HUNDRED)
    return SurplusSplit(
        to_reserves=to_reserves,
        to_dividends=to_dividends,
        to_commonwealth=amount - to_reserves - to_dividends,
        reserves_percent=config.surplus_reserves_percent,
        business_percent=config.surplus_business_percent,
        dividend_percent=config.surplus_dividend_percent,
    )


def apportion_dividends(pool, patronage):
    """
    Split a dividend pool pro-rata by trips.

    Args:
        pool: Amount to share
        patronage: List of (member, trips) pairs

    Returns:
        List of (member, trips, amount). Members without trips get nothing
        unless nobody has trips, in which case the pool is shared equally.
        Leftover pennies go one each to the members listed first (most trips).
    """
    pool = to_money(pool)
    if pool <= 0 or not patronage:
        return []

    total_trips = sum(trips for _, trips in patronage)
    if total_trips == 0:
        weighted = [(member, trips, 1) for member, trips in patronage]
    else:
        weighted = [(member, trips, trips) for member, trips in patronage if trips > 0]
    weighted.sort(key=lambda item: (-item[2], item[0].pk))
    total_weight = sum(weight for _, _, weight in weighted)

    shares = [
        [member, trips, (pool * weight / total_weight).quantize(PENNY, rounding=ROUND_DOWN)]
        for member, trips, weight in weighted
    ]
    remainder = pool - sum(share[2] for share in shares)
    index = 0
    while remainder > 0:
        shares[index % len(shares)][2] += PENNY
        remainder -= PENNY
        index += 1
    return [tuple(share) for share in shares]


def member_patronage(accrual_date, trailing_days=None):
    """Active, dividend-eligible members and their confirmed trips in the trailing period."""
    trailing_days = settings.DIVIDEND_TRAILING_DAYS if trailing_days is None else trailing_days
    period_start = accrual_date - timedelta(days=trailing_days)
    members = CooperativeMember.objects.active_on(accrual_date).filter(
        dividend_eligible=True
    ).annotate(
        trips=Count(
            'customer__bookings',
            filter=Q(
                customer__bookings__booking_status__in=PATRONAGE_STATUSES,
                customer__bookings__instance__service_date__gte=period_start,
                customer__bookings__instance__service_date__lte=accrual_date,
            ),
        )
    ).order_by('pk')
    return [(member, member.trips) for member in members]


def quoted_trip_cost(timetable, snapshot_costs):
    """
    The trip cost the fares were quoted against. Snapshots carry the cost in
    force at confirmation; live rates are only read when nothing was sold.
    If rates changed between confirmations the latest snapshot wins.
    """
    if not snapshot_costs:
        return to_money(trip_cost_for_timetable(timetable).total_trip_cost)
    if len(set(snapshot_costs)) > 1:
        logger.warning(
            "Fares on timetable %s were quoted against %s different trip costs; using £%s",
            timetable.pk, len(set(snapshot_costs)), snapshot_costs[-1]
        )
    return to_money(snapshot_costs[-1])


def service_is_complete(instance, now):
    """Every booking has reached a terminal state, or the grace period after departure is over."""
    grace_over = now >= instance.departure_at + timedelta(hours=settings.SURPLUS_GRACE_HOURS)
    if grace_over:
        return True
    if now < instance.departure_at:
        return False
    return not instance.bookings.exclude(booking_status__in=TERMINAL_STATUSES).exists()


def post_to_route_pool(pool, allocation, now):
    """
    Move one allocation through its route's pool. The reserves share of a
    surplus is paid in; a shortfall is covered from the balance as far as it
    goes and the rest is recorded as unfunded. Caller holds the pool row lock.
    """
    service_date = allocation.instance.service_date
    transactions = []

    def record(kind, amount, balance_before):
        transactions.append(SurplusPoolTransaction(
            pool=pool,
            allocation=allocation,
            transaction_type=kind,
            amount=amount,
            balance_before=balance_before,
            balance_after=pool.balance,
            service_date=service_date,
            created_at=now,
        ))

    pool.total_services_run += 1
    pool.lifetime_total_revenue += allocation.total_confirmed_fares
    pool.lifetime_total_costs += allocation.total_trip_cost
    pool.lifetime_gross_surplus = pool.lifetime_total_revenue - pool.lifetime_total_costs

    if allocation.total_surplus > 0:
        pool.total_profitable_services += 1
        pool.last_surplus_date = service_date
        if allocation.to_reserves > 0:
            before = pool.balance
            pool.balance += allocation.to_reserves
            record(SurplusPoolTransaction.SURPLUS_ADDED, allocation.to_reserves, before)

    if allocation.subsidy_applied > 0:
        before = pool.balance
        pool.balance -= allocation.subsidy_applied
        pool.total_subsidy_applied += allocation.subsidy_applied
        pool.total_subsidised_services += 1
        pool.last_subsidy_date = service_date
        record(SurplusPoolTransaction.SUBSIDY_APPLIED, allocation.subsidy_applied, before)

    unfunded = allocation.shortfall - allocation.subsidy_applied
    if unfunded > 0:
        pool.total_unfunded_shortfall += unfunded
        record(SurplusPoolTransaction.SHORTFALL_UNFUNDED, unfunded, pool.balance)

    pool.save()
    SurplusPoolTransaction.objects.bulk_create(transactions)
    return transactions


def get_route_pool(route_id):
    return RouteSurplusPool.objects.select_related('route').filter(route_id=route_id).first()


def allocate_surplus(timetable, service_date, now=None):
    """
    Split a completed service's surplus and credit member dividends.

    Raises:
        AlreadyAllocated: an allocation already exists for this service.
        ServiceNotComplete: bookings are still open and the grace period has not passed.
    """
    now = now or timezone.now()
    instance, _ = ServiceInstance.objects.get_or_create(timetable=timetable, service_date=service_date)
    if SurplusAllocation.objects.filter(instance=instance).exists():
        raise AlreadyAllocated(
            f"Surplus for {instance} has already been allocated.", instance_id=instance.pk
        )
    if not service_is_complete(instance, now):
        raise ServiceNotComplete(instance_id=instance.pk, service_date=service_date)

    config = PricingConfig.for_timetable(timetable)
    snapshots = list(FareSnapshot.objects.filter(
        booking__instance=instance,
        booking__booking_status__in=CHARGEABLE_STATUSES,
    ).order_by('created_at', 'id').values_list('quoted_fare', 'total_trip_cost'))
    fares = [fare for fare, _ in snapshots]
    trip_cost = quoted_trip_cost(timetable, [cost for _, cost in snapshots])
    collected = to_money(sum(fares, Decimal('0')))
    surplus = surplus_amount(fares, trip_cost)
    shortfall = to_money(max(Decimal('0'), trip_cost - collected))
    split = split_surplus(surplus, config)
    RouteSurplusPool.objects.get_or_create(route_id=timetable.route_id)

    try:
        with transaction.atomic():
            pool = RouteSurplusPool.objects.select_for_update().get(route_id=timetable.route_id)
            allocation = SurplusAllocation.objects.create(
                instance=instance,
                pricing_model=config.pricing_model,
                total_trip_cost=trip_cost,
                total_confirmed_fares=collected,
                confirmed_passengers=len(fares),
                total_surplus=surplus,
                reserves_percent=split.reserves_percent,
                business_percent=split.business_percent,
                dividend_percent=split.dividend_percent,
                to_reserves=split.to_reserves,
                to_dividends=split.to_dividends,
                to_commonwealth=split.to_commonwealth,
                shortfall=shortfall,
                subsidy_applied=min(shortfall, pool.balance),
                allocated_at=now,
            )
            entries = [
                MemberDividendLedgerEntry(
                    member=member,
                    allocation=allocation,
                    amount=amount,
                    patronage_trips=trips,
                    accrual_date=service_date,
                )
                for member, trips, amount in apportion_dividends(
                    split.to_dividends, member_patronage(service_date)
                )
            ]
            MemberDividendLedgerEntry.objects.bulk_create(entries)
            post_to_route_pool(pool, allocation, now)
    except IntegrityError:
        raise AlreadyAllocated(f"Surplus for {instance} has already been allocated.", instance_id=instance.pk)

    logger.info(
        "Allocated surplus £%s for %s: reserves £%s, dividends £%s (%s members), commonwealth £%s",
        surplus, instance, split.to_reserves, split.to_dividends, len(entries), split.to_commonwealth
    )
    if shortfall:
        logger.info(
            "Service %s fell £%s short of its trip cost; route pool covered £%s",
            instance, shortfall, allocation.subsidy_applied
        )
    return allocation


def get_surplus_allocation(timetable, service_date):
    return SurplusAllocation.objects.filter(
        instance__timetable=timetable, instance__service_date=service_date
    ).prefetch_related('dividend_entries__member').first()


def complete_service(timetable, service_date, now=None):
    """
    Idempotent completion trigger: returns (allocation, created). A retried
    trigger gets the existing allocation back instead of an error.
    """
    try:
        return allocate_surplus(timetable, service_date, now=now), True
    except AlreadyAllocated:
        logger.info("Completion retried for timetable %s on %s", timetable.pk, service_date)
        return get_surplus_allocation(timetable, service_date), False


def surplus_pool_summary():
    totals = SurplusAllocation.objects.aggregate(
        services=Count('id'),
        total_surplus=Sum('total_surplus'),
        to_reserves=Sum('to_reserves'),
        to_dividends=Sum('to_dividends'),
        to_commonwealth=Sum('to_commonwealth'),
        total_shortfall=Sum('shortfall'),
        subsidy_applied=Sum('subsidy_applied'),
    )
    totals['route_pool_balance'] = RouteSurplusPool.objects.aggregate(total=Sum('balance'))['total']
    return {
        key: value if key == 'services' else to_money(value or 0)
        for key, value in totals.items()
    }
