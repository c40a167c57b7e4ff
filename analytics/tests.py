"""
Tests for analytics app with REAL MongoDB integration.
Tests cover: Quote demand aggregation, Booking audit trail, API logging, API access control.

The real MongoDB tests skip if MongoDB is unavailable.
To run with MongoDB:
    docker run -d -p 27017:27017 --name mongodb-test mongo:latest
    python manage.py test analytics
"""
import unittest
from datetime import date, datetime, timedelta, timezone as dt_timezone
from types import SimpleNamespace
from unittest.mock import patch, MagicMock

from django.test import TestCase, override_settings
from pymongo import MongoClient
from pymongo.errors import PyMongoError
from rest_framework.test import APITestCase
from rest_framework import status

import utils.mongo
from utils.mongo import (
    get_booking_events, get_quote_demand, log_api_request, log_booking_event,
)
from utils.testing import make_customer, make_timetable, make_user, upcoming

TEST_DB_NAME = 'section22_logs_test'


def is_mongodb_available():
    """Check if MongoDB is available for testing."""
    try:
        client = MongoClient('mongodb://localhost:27017/', serverSelectionTimeoutMS=2000)
        client.admin.command('ping')
        client.close()
        return True
    except PyMongoError:
        return False


# Skip decorator for tests requiring MongoDB
requires_mongodb = unittest.skipUnless(
    is_mongodb_available(),
    "MongoDB is not available. Start MongoDB to run these tests."
)


def reset_mongo_singleton():
    utils.mongo._mongo_db = None
    utils.mongo._mongo_client = None
    utils.mongo._mongo_available = None


def fake_booking(reference='S22ABC1234'):
    return SimpleNamespace(
        reference=reference,
        customer_id=7,
        instance=SimpleNamespace(timetable_id=3, service_date=date(2025, 3, 14)),
        booking_status='confirmed',
        payment_status='unpaid',
    )


# =============================================================================
# REAL MONGODB INTEGRATION TESTS
# =============================================================================

@requires_mongodb
@override_settings(MONGODB_URI='mongodb://localhost:27017/', MONGODB_NAME=TEST_DB_NAME)
class RealMongoDBTests(TestCase):
    """
    Real integration tests with MongoDB.
    These tests actually connect to MongoDB and verify logging works.
    """

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.mongo_client = MongoClient('mongodb://localhost:27017/')
        cls.db = cls.mongo_client[TEST_DB_NAME]

    @classmethod
    def tearDownClass(cls):
        cls.mongo_client.drop_database(TEST_DB_NAME)
        cls.mongo_client.close()
        super().tearDownClass()

    def setUp(self):
        self.db.api_logs.delete_many({})
        self.db.booking_events.delete_many({})
        reset_mongo_singleton()
        self.addCleanup(reset_mongo_singleton)

    def test_log_api_request_stores_data(self):
        log_api_request(
            endpoint='/api/services/3/2025-03-14/quote/',
            method='GET',
            user_id=1,
            request_params={'timetable_id': 3, 'service_date': '2025-03-14', 'tier': 'child'},
            response_status=200,
            execution_time_ms=42.5,
        )

        logs = list(self.db.api_logs.find({'user_id': 1}))
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0]['request_params']['tier'], 'child')
        self.assertEqual(logs[0]['execution_time_ms'], 42.5)

    def test_quote_demand_aggregation(self):
        now = datetime.now(dt_timezone.utc)
        quote = '/api/services/{}/2025-03-14/quote/'
        self.db.api_logs.insert_many([
            {'endpoint': quote.format(3), 'request_params': {'timetable_id': 3, 'service_date': '2025-03-14', 'member': 'true'}, 'timestamp': now},
            {'endpoint': quote.format(3), 'request_params': {'timetable_id': 3, 'service_date': '2025-03-14'}, 'timestamp': now},
            {'endpoint': quote.format(3), 'request_params': {'timetable_id': 3, 'service_date': '2025-03-14'}, 'timestamp': now},
            {'endpoint': quote.format(5), 'request_params': {'timetable_id': 5, 'service_date': '2025-03-14'}, 'timestamp': now},
            # Outside the window and not a quote
            {'endpoint': quote.format(5), 'request_params': {'timetable_id': 5, 'service_date': '2025-03-14'},
             'timestamp': now - timedelta(days=60)},
            {'endpoint': '/api/services/5/2025-03-14/occupancy/', 'request_params': {'timetable_id': 5}, 'timestamp': now},
        ])

        results = get_quote_demand(limit=5, days=30)

        self.assertEqual(len(results), 2)
        self.assertEqual(results[0]['timetable_id'], 3)
        self.assertEqual(results[0]['quote_count'], 3)
        self.assertEqual(results[0]['member_quotes'], 1)
        self.assertEqual(results[1]['quote_count'], 1)

    def test_booking_events_round_trip(self):
        log_booking_event('created', fake_booking())
        log_booking_event('confirmed', fake_booking(), quoted_fare='8.00')
        log_booking_event('created', fake_booking('OTHER12345'))

        events = get_booking_events(booking_reference='s22abc1234')

        self.assertEqual(sorted(e['event'] for e in events), ['confirmed', 'created'])
        confirmed = next(e for e in events if e['event'] == 'confirmed')
        self.assertEqual(confirmed['details']['quoted_fare'], '8.00')
        self.assertIsInstance(confirmed['_id'], str)

    def test_indexes_created(self):
        utils.mongo.get_mongo_db()

        indexes = self.db.booking_events.index_information()
        self.assertIn('timestamp_-1', indexes)
        self.assertIn('booking_reference_1_timestamp_1', indexes)


# =============================================================================
# MOCKED TESTS (fallback when MongoDB is unavailable)
# =============================================================================

class MockedMongoUtilityTests(TestCase):
    """Test MongoDB utility functions with mocks (when MongoDB unavailable)."""

    @patch('utils.mongo.get_mongo_db')
    def test_get_quote_demand_returns_list(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.api_logs.aggregate.return_value = iter([
            {'timetable_id': 3, 'service_date': '2025-03-14', 'quote_count': 9, 'member_quotes': 2},
        ])
        mock_get_db.return_value = mock_db

        result = get_quote_demand(limit=5)

        self.assertEqual(result[0]['quote_count'], 9)
        pipeline = mock_db.api_logs.aggregate.call_args[0][0]
        self.assertEqual(pipeline[-2], {'$limit': 5})

    @patch('utils.mongo.get_mongo_db')
    def test_readers_handle_db_unavailable(self, mock_get_db):
        mock_get_db.return_value = None

        self.assertEqual(get_quote_demand(), [])
        self.assertEqual(get_booking_events(), [])

    @patch('utils.mongo.get_mongo_db')
    def test_writers_handle_db_unavailable(self, mock_get_db):
        mock_get_db.return_value = None

        # Should not raise exception
        log_api_request(
            endpoint='/api/services/3/2025-03-14/quote/',
            method='GET',
            user_id=1,
            request_params={},
            response_status=200,
            execution_time_ms=10.0,
        )
        log_booking_event('created', fake_booking())

    @patch('utils.mongo.get_mongo_db')
    def test_log_booking_event_document(self, mock_get_db):
        mock_db = MagicMock()
        mock_get_db.return_value = mock_db

        log_booking_event('paid', fake_booking(), user_id=4)

        document = mock_db.booking_events.insert_one.call_args[0][0]
        self.assertEqual(document['event'], 'paid')
        self.assertEqual(document['timetable_id'], 3)
        self.assertEqual(document['service_date'], '2025-03-14')
        self.assertEqual(document['user_id'], 4)

    @patch('utils.mongo.get_mongo_db')
    def test_booking_event_filters(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.booking_events.find.return_value.sort.return_value.skip.return_value.limit.return_value = []
        mock_get_db.return_value = mock_db

        get_booking_events(booking_reference='abc', timetable_id=3, event='cancelled')

        mock_db.booking_events.find.assert_called_once_with({
            'booking_reference': 'ABC',
            'timetable_id': 3,
            'event': 'cancelled',
        })

    @patch('utils.mongo.get_mongo_db')
    def test_insert_failure_is_logged_not_raised(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.booking_events.insert_one.side_effect = PyMongoError('down')
        mock_get_db.return_value = mock_db

        with self.assertLogs('utils.mongo', level='ERROR'):
            log_booking_event('created', fake_booking())


# =============================================================================
# MIDDLEWARE TESTS
# =============================================================================

class APILoggingMiddlewareTests(APITestCase):
    """Service endpoints are logged; everything else is not."""

    def setUp(self):
        self.timetable = make_timetable()
        self.service_date = upcoming()
        self.user = make_user()
        make_customer(user=self.user)
        self.client.force_authenticate(user=self.user)

    @patch('utils.middleware.log_api_request')
    def test_quote_request_logged(self, mock_log):
        self.client.get(f'/api/services/{self.timetable.pk}/{self.service_date}/quote/', {'tier': 'child'})

        mock_log.assert_called_once()
        kwargs = mock_log.call_args.kwargs
        self.assertEqual(kwargs['method'], 'GET')
        self.assertEqual(kwargs['response_status'], 200)
        self.assertEqual(kwargs['request_params']['tier'], 'child')
        self.assertEqual(kwargs['request_params']['timetable_id'], self.timetable.pk)
        self.assertEqual(kwargs['request_params']['service_date'], str(self.service_date))

    @patch('utils.middleware.log_api_request')
    def test_other_requests_not_logged(self, mock_log):
        self.client.get('/api/bookings/my/')
        mock_log.assert_not_called()


# =============================================================================
# API TESTS (work with or without MongoDB)
# =============================================================================

class AnalyticsAPITests(APITestCase):
    """Integration tests for analytics endpoints."""

    def setUp(self):
        self.user = make_user('user')
        self.admin = make_user('admin', is_staff=True)

    @patch('analytics.views.get_quote_demand')
    def test_quote_demand(self, mock_demand):
        mock_demand.return_value = [
            {'timetable_id': 3, 'service_date': '2025-03-14', 'quote_count': 12, 'member_quotes': 4},
            {'timetable_id': 5, 'service_date': '2025-03-15', 'quote_count': 6, 'member_quotes': 0},
        ]
        self.client.force_authenticate(user=self.user)

        response = self.client.get('/api/analytics/quote-demand/', {'limit': 50, 'days': 'abc'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        mock_demand.assert_called_once_with(limit=20, days=30)

    def test_quote_demand_unauthenticated(self):
        response = self.client.get('/api/analytics/quote-demand/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    @patch('analytics.views.get_booking_events')
    def test_audit_trail_admin_only(self, mock_events):
        mock_events.return_value = []
        self.client.force_authenticate(user=self.user)

        response = self.client.get('/api/analytics/audit/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        mock_events.assert_not_called()

    @patch('analytics.views.get_booking_events')
    def test_audit_trail_filters(self, mock_events):
        mock_events.return_value = [{'event': 'confirmed', 'booking_reference': 'S22ABC1234'}]
        self.client.force_authenticate(user=self.admin)

        response = self.client.get('/api/analytics/audit/', {
            'reference': 'S22ABC1234',
            'timetable_id': '3',
            'start_date': '2025-03-01',
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        kwargs = mock_events.call_args.kwargs
        self.assertEqual(kwargs['booking_reference'], 'S22ABC1234')
        self.assertEqual(kwargs['timetable_id'], 3)
        self.assertEqual(kwargs['start_date'], datetime(2025, 3, 1))
        self.assertEqual(kwargs['limit'], 50)
        self.assertEqual(response.data['filters_applied']['booking_reference'], 'S22ABC1234')
