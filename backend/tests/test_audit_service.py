import unittest

from autocrm import create_app
from autocrm.extensions import db
from autocrm.models import AuditEvent
from autocrm.services import audit_service
from autocrm.time_utils import utcnow


class AuditServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "TESTING": True,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(AuditEvent).delete()
        db.session.commit()

    def test_append_does_not_commit(self):
        audit_service.append_event(
            event_type="shift.opened",
            event_category="shift",
            entity_type="shift",
            entity_id=1,
            operator_id=7,
        )
        db.session.rollback()

        self.assertEqual(db.session.query(AuditEvent).count(), 0)

    def test_occurred_at_defaults_when_missing(self):
        ev = audit_service.append_event(
            event_type="shift.opened",
            event_category="shift",
            entity_type="shift",
            entity_id=1,
        )
        db.session.commit()

        self.assertIsNotNone(db.session.get(AuditEvent, ev.id).occurred_at)

    def test_list_events_filters(self):
        now = utcnow()
        for receipt_id in (1, 1, 2):
            audit_service.append_event(
                event_type="sale.completed",
                event_category="sales",
                entity_type="receipt",
                entity_id=receipt_id,
                receipt_id=receipt_id,
                occurred_at=now,
            )
        db.session.commit()

        self.assertEqual(len(audit_service.list_events(receipt_id=1)), 2)
        self.assertEqual(len(audit_service.list_events(entity_type="receipt", entity_id=2)), 1)
        self.assertEqual(len(audit_service.list_events(limit=1)), 1)


if __name__ == "__main__":
    unittest.main()
