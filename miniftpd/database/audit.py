"""Audit trail of logins and transfers."""
import logging
from sqlalchemy.exc import SQLAlchemyError
from miniftpd.database.models import LoginRecord, TransferRecord, get_db
from miniftpd.core.session import ANONYMOUS

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Writes audit rows; a failing database never breaks a session."""

    def login(self, username: str, client_ip: str):
        self._save(LoginRecord(
            username=username,
            client_ip=client_ip,
            anonymous=username == ANONYMOUS,
        ))

    def transfer(self, command: str, path: str, size: int, success: bool, client_ip: str, username=None):
        self._save(TransferRecord(
            command=command,
            path=path,
            size=size,
            success=success,
            username=username,
            client_ip=client_ip,
        ))

    def _save(self, record):
        db_generator = get_db()
        db = next(db_generator)
        try:
            db.add(record)
            db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record {record.__class__.__name__}: {str(e)}")
            try:
                db.rollback()
            except SQLAlchemyError as rollback_err:
                logger.error(f"Failed to rollback transaction: {str(rollback_err)}")
        finally:
            db_generator.close()
