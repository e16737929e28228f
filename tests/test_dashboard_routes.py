from __future__ import annotations

import json
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from db_support import add_submission, make_session_factory
from trade_admin.config import settings
from trade_admin.db import get_db
from trade_admin.main import create_app
from trade_admin.models import AuditLog, Principal, PrincipalRole, Trade
from trade_admin.security.passwords import hash_password
from trade_admin.services.pooling_service import add_location, list_schedule
from trade_admin.services.trade_service import create_trade

PASSWORD = 'correct-horse'


class DashboardRouteTests(unittest.TestCase):
    role = PrincipalRole.ADMIN

    def setUp(self) -> None:
        self.engine, self.factory = make_session_factory()
        with self.factory() as db:
            db.add(Principal(username='admin', password_hash=hash_password(PASSWORD), role=self.role, active=True))
            db.commit()

        app = create_app(session_factory=self.factory)

        def override_get_db():
            db = self.factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)
        self.client.get('/login')
        response = self.client.post(
            '/login',
            data={'username': 'admin', 'password': PASSWORD, 'csrf_token': self.csrf},
            follow_redirects=False,
        )
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/dashboard')

    def tearDown(self) -> None:
        self.client.close()
        self.engine.dispose()

    @property
    def csrf(self) -> str:
        return self.client.cookies.get('csrf_token')

    def _post(self, path: str, data: dict | None = None):
        return self.client.post(path, data={**(data or {}), 'csrf_token': self.csrf}, follow_redirects=False)


class AdminRouteTests(DashboardRouteTests):
    def test_unauthenticated_requests_go_to_login(self) -> None:
        anonymous = TestClient(self.client.app)
        response = anonymous.get('/dashboard/trades', follow_redirects=False)
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/login')
        self.assertEqual(anonymous.get('/health').json(), {'status': 'ok'})

    def test_bad_password_is_rejected(self) -> None:
        anonymous = TestClient(self.client.app)
        anonymous.get('/login')
        response = anonymous.post(
            '/login',
            data={'username': 'admin', 'password': 'nope', 'csrf_token': anonymous.cookies.get('csrf_token')},
        )
        self.assertEqual(response.status_code, 401)
        self.assertIn('Invalid username or password', response.text)

    def test_overview_renders_navigation(self) -> None:
        response = self.client.get('/dashboard')
        self.assertEqual(response.status_code, 200)
        for target in ('nav-dashboard', 'nav-trades', 'nav-pooling-schedule', 'nav-settings'):
            self.assertIn(f'id="{target}"', response.text)

    def test_post_without_csrf_token_is_forbidden(self) -> None:
        response = self.client.post('/dashboard/trades/create', data={'trade_number': '1', 'trade_date': '2026-10-24'})
        self.assertEqual(response.status_code, 403)

    def test_trade_create_and_activate(self) -> None:
        response = self._post('/dashboard/trades/create', {'trade_number': '41', 'trade_date': '2026-10-24', 'is_active': 'on'})
        self.assertEqual(response.status_code, 303)
        self.assertIn('notice=', response.headers['location'])
        self._post('/dashboard/trades/create', {'trade_number': '42', 'trade_date': '2026-10-31'})

        with self.factory() as db:
            second = db.execute(select(Trade).where(Trade.trade_number == '42')).scalar_one()
        self._post(f'/dashboard/trades/{second.id}/activate')

        with self.factory() as db:
            active = db.execute(select(Trade.trade_number).where(Trade.is_active.is_(True))).scalars().all()
            actions = db.execute(select(AuditLog.action)).scalars().all()
        self.assertEqual(active, ['42'])
        self.assertIn('TRADE_ACTIVATED', actions)

    def test_trade_validation_error_redirects_with_message(self) -> None:
        response = self._post('/dashboard/trades/create', {'trade_number': '', 'trade_date': '2026-10-24'})
        self.assertEqual(response.status_code, 303)
        self.assertIn('error=Trade+number+is+required', response.headers['location'])

    def test_pooling_reorder_json(self) -> None:
        with self.factory() as db:
            ids = [add_location(db, location=name, pooling_date=date(2026, 10, 20)).id for name in 'ABC']
            db.commit()

        response = self.client.post(
            '/dashboard/pooling/reorder',
            json={'ordered_ids': [ids[2], ids[0], ids[1]]},
            headers={'x-csrf-token': self.csrf},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual([item['location'] for item in response.json()['items']], ['C', 'A', 'B'])

        with self.factory() as db:
            self.assertEqual([item.order_index for item in list_schedule(db)], [0, 1, 2])

        response = self.client.post(
            '/dashboard/pooling/reorder',
            json={'ordered_ids': [ids[0], 999]},
            headers={'x-csrf-token': self.csrf},
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            '/dashboard/pooling/reorder',
            json={'ordered_ids': [ids[0]]},
            headers={'x-csrf-token': self.csrf},
        )
        self.assertEqual(response.status_code, 400)

    def test_pooling_reorder_commit_failure_returns_stored_order(self) -> None:
        with self.factory() as db:
            ids = [add_location(db, location=name, pooling_date=date(2026, 10, 20)).id for name in 'AB']
            db.commit()

        failure = OperationalError('INSERT INTO audit_log', {}, Exception('database is locked'))
        with patch('trade_admin.routers.dashboard.log_audit', side_effect=failure):
            response = self.client.post(
                '/dashboard/pooling/reorder',
                json={'ordered_ids': [ids[1], ids[0]]},
                headers={'x-csrf-token': self.csrf},
            )
        self.assertEqual(response.status_code, 409)
        self.assertEqual([item['location'] for item in response.json()['items']], ['A', 'B'])

        with self.factory() as db:
            self.assertEqual([item.location for item in list_schedule(db)], ['A', 'B'])

    def test_dropdown_pages(self) -> None:
        self._post('/dashboard/dropdowns/create', {'category': 'depot', 'label': 'North Depot'})
        response = self.client.get('/dashboard/dropdowns?category=depot')
        self.assertEqual(response.status_code, 200)
        self.assertIn('North Depot', response.text)

        response = self._post('/dashboard/dropdowns/create', {'category': 'depot', 'label': ' '})
        self.assertIn('error=Please+enter+a+label', response.headers['location'])

    def test_submissions_filter_and_tags(self) -> None:
        with self.factory() as db:
            add_submission(db, name='Alice', device_fingerprint='fp-1', weight=Decimal('10'))
            add_submission(db, name='Bob', device_fingerprint='fp-1', weight=Decimal('5.5'))
            add_submission(db, name='Carol', depot='South Depot', weight=Decimal('2'))
            db.commit()

        response = self.client.get('/dashboard/submissions')
        self.assertEqual(response.status_code, 200)
        self.assertIn('Same device', response.text)
        self.assertIn('17.50 kg', response.text)

        response = self.client.get('/dashboard/submissions', params={'q': 'carol'})
        self.assertIn('Showing 1 of 3', response.text)

    def test_exports(self) -> None:
        response = self.client.get('/dashboard/submissions/export/csv', follow_redirects=False)
        self.assertEqual(response.status_code, 303)
        self.assertIn('error=No+data+to+export', response.headers['location'])

        with self.factory() as db:
            add_submission(db, name='Smith, John', trade_number=None)
            add_submission(db, name='Jane')
            db.commit()

        response = self.client.get('/dashboard/submissions/export/csv')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers['content-type'].startswith('text/csv'))
        self.assertIn('attachment; filename=submissions_', response.headers['content-disposition'])
        self.assertTrue(response.text.startswith('Name,Phone,Details,Weight,Type,Depot,Trade Number,Submitted At'))
        self.assertIn('"Smith, John"', response.text)
        self.assertIn('N/A', response.text)

        response = self.client.get('/dashboard/submissions/export/json', params={'q': 'jane'})
        self.assertEqual([row['name'] for row in json.loads(response.text)], ['Jane'])

        response = self.client.get('/dashboard/submissions/export/txt', params={'q': 'jane'})
        self.assertEqual(response.text, 'Jane | 0400000000 | Steers | 100kg | Beef | North Depot')

        self.assertEqual(self.client.get('/dashboard/submissions/export/xml').status_code, 404)

    def test_settings_preview_and_save(self) -> None:
        response = self.client.get('/dashboard/settings', params={'next_opening_date': '2026-10-24'})
        self.assertIn('Saturday, October 24, 2026', response.text)

        response = self._post('/dashboard/settings/next-opening-date', {'next_opening_date': ''})
        self.assertIn('error=Please+enter+a+date', response.headers['location'])

        self._post('/dashboard/settings/next-opening-date', {'next_opening_date': '2026-10-24'})
        response = self.client.get('/dashboard/settings')
        self.assertIn('value="2026-10-24"', response.text)

    def test_weekly_reset(self) -> None:
        with self.factory() as db:
            create_trade(db, trade_number='41', trade_date=date(2026, 10, 17), is_active=True)
            db.commit()

        response = self.client.get('/dashboard/reset')
        self.assertIn('value="42"', response.text)

        response = self._post('/dashboard/reset/run', {'trade_number': '42', 'trade_date': '2026-10-24'})
        self.assertIn('notice=', response.headers['location'])
        with self.factory() as db:
            active = db.execute(select(Trade.trade_number).where(Trade.is_active.is_(True))).scalars().all()
        self.assertEqual(active, ['42'])

    def test_tour_walkthrough(self) -> None:
        response = self._post('/dashboard/tour/start', {'current_path': '/dashboard'})
        self.assertEqual(response.headers['location'], '/dashboard')
        self.assertEqual(self.client.cookies.get(settings.tour_cookie_name), '0')

        page = self.client.get('/dashboard')
        self.assertIn('id="tour-overlay"', page.text)
        self.assertIn('data-target-id="nav-dashboard"', page.text)

        response = self._post('/dashboard/tour/next', {'current_path': '/dashboard'})
        self.assertEqual(response.headers['location'], '/dashboard/trades')

        layout = self.client.get(
            '/dashboard/tour/layout',
            params={'top': 100, 'left': 20, 'width': 180, 'height': 40, 'viewport_width': 375},
        ).json()
        self.assertEqual(layout['target_id'], 'nav-trades')
        self.assertEqual(layout['side'], 'bottom')

        response = self._post('/dashboard/tour/stop', {'current_path': '/dashboard/trades'})
        self.assertEqual(response.headers['location'], '/dashboard/trades')
        self.assertIsNone(self.client.cookies.get(settings.tour_cookie_name))
        self.assertNotIn('id="tour-overlay"', self.client.get('/dashboard').text)


class StaffRouteTests(DashboardRouteTests):
    role = PrincipalRole.STAFF

    def test_staff_cannot_run_reset_or_delete(self) -> None:
        self.assertEqual(self._post('/dashboard/reset/run', {'trade_number': '1', 'trade_date': '2026-10-24'}).status_code, 403)
        with self.factory() as db:
            trade = create_trade(db, trade_number='1', trade_date=date(2026, 10, 24))
            db.commit()
        self.assertEqual(self._post(f'/dashboard/trades/{trade.id}/delete').status_code, 403)

    def test_staff_can_manage_pooling(self) -> None:
        response = self._post('/dashboard/pooling/create', {'location': 'Yard', 'pooling_date': '2026-10-20'})
        self.assertIn('notice=', response.headers['location'])


if __name__ == '__main__':
    unittest.main()
