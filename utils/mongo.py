"""
MongoDB utility functions for the audit trail and fare-quote analytics.

Everything here is best effort: when MongoDB is unreachable the writers are
no-ops and the readers return empty results.
"""
import logging
from datetime import datetime, timedelta, timezone as dt_timezone

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError
from django.conf import settings

logger = logging.getLogger(__name__)

QUOTE_ENDPOINT_SUFFIX = '/quote/'

# MongoDB client singleton
_mongo_client = None
_mongo_db = None
_mongo_available = None


def _utcnow():
    return datetime.now(dt_timezone.utc)


def get_mongo_db():
    """Get MongoDB database instance (singleton pattern)."""
    global _mongo_client, _mongo_db, _mongo_available

    # If we already know MongoDB is unavailable, return None
    if _mongo_available is False:
        return None

    if _mongo_db is None:
        try:
            _mongo_client = MongoClient(
                settings.MONGODB_URI,
                serverSelectionTimeoutMS=settings.MONGODB_TIMEOUT_MS,
                connectTimeoutMS=settings.MONGODB_TIMEOUT_MS
            )
            _mongo_client.admin.command('ping')
            _mongo_db = _mongo_client[settings.MONGODB_NAME]
            _mongo_available = True
            _ensure_indexes(_mongo_db)
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.warning("MongoDB connection failed, audit logging disabled: %s", e)
            _mongo_available = False
            return None

    return _mongo_db


def _ensure_indexes(db):
    """Create necessary indexes for MongoDB collections."""
    try:
        api_logs = db.api_logs
        api_logs.create_index([("timestamp", -1)])
        api_logs.create_index([("endpoint", 1), ("timestamp", -1)])
        api_logs.create_index([("request_params.timetable_id", 1), ("request_params.service_date", 1)])
        api_logs.create_index([("response_status", 1)])

        booking_events = db.booking_events
        booking_events.create_index([("timestamp", -1)])
        booking_events.create_index([("booking_reference", 1), ("timestamp", 1)])
        booking_events.create_index([("timetable_id", 1), ("service_date", 1)])
    except PyMongoError as e:
        logger.error("Error creating MongoDB indexes: %s", e)


def log_api_request(endpoint, method, user_id, request_params,
                    response_status, execution_time_ms):
    """
    Log an API request to MongoDB.

    Args:
        endpoint: API endpoint path
        method: HTTP method (GET, POST, etc.)
        user_id: ID of the authenticated user
        request_params: Query and path parameters of the request
        response_status: HTTP response status code
        execution_time_ms: Execution time in milliseconds
    """
    db = get_mongo_db()
    if db is None:
        return

    try:
        db.api_logs.insert_one({
            "endpoint": endpoint,
            "method": method,
            "user_id": user_id,
            "request_params": request_params,
            "response_status": response_status,
            "execution_time_ms": execution_time_ms,
            "timestamp": _utcnow(),
        })
    except PyMongoError as e:
        logger.error("Error logging request to MongoDB: %s", e)


def log_booking_event(event, booking, user_id=None, **details):
    """
    Append a booking lifecycle event to the audit trail.

    Args:
        event: Event name (created, confirmed, cancelled, ...)
        booking: Booking the event applies to
        user_id: Staff or customer user who triggered it, if known
        details: Extra fields stored with the event (e.g. quoted_fare)
    """
    db = get_mongo_db()
    if db is None:
        return

    instance = booking.instance
    try:
        db.booking_events.insert_one({
            "event": event,
            "booking_reference": booking.reference,
            "customer_id": booking.customer_id,
            "timetable_id": instance.timetable_id,
            "service_date": str(instance.service_date),
            "booking_status": booking.booking_status,
            "payment_status": booking.payment_status,
            "user_id": user_id,
            "details": details,
            "timestamp": _utcnow(),
        })
    except PyMongoError as e:
        logger.error("Error logging booking event to MongoDB: %s", e)


def get_quote_demand(limit=5, days=30):
    """
    Services with the most fare-quote requests, newest window first.

    Returns:
        List of {timetable_id, service_date, quote_count, member_quotes}
    """
    db = get_mongo_db()
    if db is None:
        return []

    pipeline = [
        {
            "$match": {
                "endpoint": {"$regex": f"{QUOTE_ENDPOINT_SUFFIX}$"},
                "timestamp": {"$gte": _utcnow() - timedelta(days=days)},
            }
        },
        {
            "$group": {
                "_id": {
                    "timetable_id": "$request_params.timetable_id",
                    "service_date": "$request_params.service_date"
                },
                "quote_count": {"$sum": 1},
                "member_quotes": {
                    "$sum": {"$cond": [{"$eq": ["$request_params.member", "true"]}, 1, 0]}
                },
            }
        },
        {"$sort": {"quote_count": -1}},
        {"$limit": limit},
        {
            "$project": {
                "_id": 0,
                "timetable_id": "$_id.timetable_id",
                "service_date": "$_id.service_date",
                "quote_count": 1,
                "member_quotes": 1,
            }
        }
    ]

    try:
        return list(db.api_logs.aggregate(pipeline))
    except PyMongoError as e:
        logger.error("Error aggregating quote demand: %s", e)
        return []


def get_booking_events(limit=100, offset=0, booking_reference=None, timetable_id=None,
                       service_date=None, event=None, start_date=None, end_date=None):
    """
    Audit trail retrieval with filtering, newest first.

    Args:
        limit: Maximum number of events to return
        offset: Pagination offset
        booking_reference: Only events for this booking
        timetable_id: Only events for this timetable
        service_date: Only events for this service date (YYYY-MM-DD)
        event: Only this event type
        start_date: Events after this datetime
        end_date: Events before this datetime
    """
    db = get_mongo_db()
    if db is None:
        return []

    query = {}
    if booking_reference:
        query["booking_reference"] = booking_reference.upper()
    if timetable_id:
        query["timetable_id"] = timetable_id
    if service_date:
        query["service_date"] = service_date
    if event:
        query["event"] = event
    if start_date or end_date:
        query["timestamp"] = {}
        if start_date:
            query["timestamp"]["$gte"] = start_date
        if end_date:
            query["timestamp"]["$lte"] = end_date

    try:
        cursor = db.booking_events.find(query).sort("timestamp", -1).skip(offset).limit(limit)
        result = []
        for entry in cursor:
            entry["_id"] = str(entry["_id"])
            if hasattr(entry.get("timestamp"), 'isoformat'):
                entry["timestamp"] = entry["timestamp"].isoformat()
            result.append(entry)
        return result
    except PyMongoError as e:
        logger.error("Error reading booking events: %s", e)
        return []


def is_mongodb_available():
    """Check if MongoDB is available."""
    if _mongo_available is not None:
        return _mongo_available

    get_mongo_db()
    return _mongo_available or False
