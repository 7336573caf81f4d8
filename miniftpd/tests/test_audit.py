import unittest
from unittest import mock
from sqlalchemy.exc import OperationalError
from miniftpd.database import models
from miniftpd.database.audit import AuditRecorder
from miniftpd.database.models import LoginRecord, TransferRecord, get_db, init_db


class TestAuditRecorder(unittest.TestCase):
    def setUp(self):
        init_db("sqlite://")
        self.recorder = AuditRecorder()

    def query(self, model):
        db_generator = get_db()
        db = next(db_generator)
        try:
            return [row.to_dict() for row in db.query(model).all()]
        finally:
            db_generator.close()

    def test_login(self):
        """Test that logins are stored with the anonymous flag."""
        self.recorder.login(username="anonymous", client_ip="192.0.2.1")
        self.recorder.login(username="bob", client_ip="192.0.2.2")
        rows = self.query(LoginRecord)
        self.assertEqual([(r["username"], r["anonymous"]) for r in rows], [("anonymous", True), ("bob", False)])
        self.assertIsNotNone(rows[0]["timestamp"])

    def test_transfer(self):
        """Test that transfers are stored."""
        self.recorder.transfer(command="STOR", path="/pub/a.bin", size=10, success=True,
                               client_ip="192.0.2.1", username="bob")
        rows = self.query(TransferRecord)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["path"], "/pub/a.bin")
        self.assertEqual(rows[0]["size"], 10)
        self.assertTrue(rows[0]["success"])

    def test_database_failure_is_contained(self):
        """Test that a failing commit is logged and rolled back, not raised."""
        error = OperationalError("INSERT", {}, Exception("disk full"))
        with mock.patch.object(models.SessionLocal.session_factory.class_, "commit", side_effect=error):
            with self.assertLogs("miniftpd.database.audit", level="ERROR"):
                self.recorder.login(username="bob", client_ip="192.0.2.2")
        self.assertEqual(self.query(LoginRecord), [])


if __name__ == "__main__":
    unittest.main()
