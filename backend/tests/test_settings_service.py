import unittest
from flask import Flask

from wholesale.extensions import db
from wholesale.models import Organization, Profile, BusinessSettings, ChangeEvent
from wholesale.services import settings_service


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
            DEFAULT_CURRENCY="TND",
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from wholesale import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(ChangeEvent).delete()
        db.session.query(BusinessSettings).delete()
        db.session.query(Profile).delete()
        db.session.query(Organization).delete()
        db.session.commit()

        self.org = Organization(name="Test Org", is_active=True)
        db.session.add(self.org)
        db.session.flush()

        self.profile = Profile(
            org_id=self.org.id,
            email="owner@test.local",
            full_name="Owner",
            role="owner",
            password_hash="x",
        )
        db.session.add(self.profile)
        db.session.commit()

    def test_defaults_before_first_save(self):
        settings = settings_service.get_business_settings(self.org.id)
        self.assertIsNone(settings["id"])
        self.assertEqual(settings["currency"], "TND")
        self.assertEqual(settings["tax_rate_bps"], 0)
        self.assertEqual(settings["invoice_prefix"], "INV-")

    def test_first_save_creates_row(self):
        saved = settings_service.upsert_business_settings(
            self.org.id, {"business_name": "Sahel Distribution", "tax_rate_bps": 1900}
        )
        self.assertIsNotNone(saved["id"])
        self.assertEqual(saved["business_name"], "Sahel Distribution")
        self.assertEqual(saved["tax_rate_bps"], 1900)

        event = db.session.query(ChangeEvent).filter_by(table_name="business_settings").one()
        self.assertEqual(event.event_type, "INSERT")

    def test_second_save_updates_same_row(self):
        first = settings_service.upsert_business_settings(self.org.id, {"invoice_prefix": "FAC-"})
        second = settings_service.upsert_business_settings(self.org.id, {"currency": "EUR"})

        self.assertEqual(first["id"], second["id"])
        self.assertEqual(second["invoice_prefix"], "FAC-")
        self.assertEqual(second["currency"], "EUR")
        self.assertEqual(db.session.query(BusinessSettings).count(), 1)

        kinds = [e.event_type for e in db.session.query(ChangeEvent).order_by(ChangeEvent.id).all()]
        self.assertEqual(kinds, ["INSERT", "UPDATE"])

    def test_non_writable_keys_ignored(self):
        saved = settings_service.upsert_business_settings(self.org.id, {"org_id": 999, "business_name": "X"})
        self.assertEqual(saved["org_id"], self.org.id)

    def test_profile_update_only_full_name(self):
        updated = settings_service.update_profile(self.profile, {"full_name": "Amel", "role": "staff"})
        self.assertEqual(updated["full_name"], "Amel")
        self.assertEqual(updated["role"], "owner")


if __name__ == "__main__":
    unittest.main()
