"""Database models for the FTP audit trail."""
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Integer, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, scoped_session
from sqlalchemy.pool import StaticPool
from miniftpd.core.config import DATABASE_URL
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()

engine = None

# Thread-safe session factory, bound by init_db()
SessionLocal = scoped_session(sessionmaker(autoflush=False))


def _utcnow():
    return datetime.now(timezone.utc)


class LoginRecord(Base):
    """A successful login."""
    __tablename__ = 'logins'

    id = Column(Integer, primary_key=True)
    username = Column(String, nullable=False)
    client_ip = Column(String, nullable=False)
    anonymous = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        """Convert the model instance to a dictionary."""
        return {
            'id': self.id,
            'username': self.username,
            'client_ip': self.client_ip,
            'anonymous': self.anonymous,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }


class TransferRecord(Base):
    """One LIST, RETR or STOR, successful or not."""
    __tablename__ = 'transfers'

    id = Column(Integer, primary_key=True)
    command = Column(String(4), nullable=False)
    path = Column(String, nullable=False)
    size = Column(Integer, nullable=False, default=0)
    success = Column(Boolean, nullable=False)
    username = Column(String, nullable=True)
    client_ip = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        """Convert the model instance to a dictionary."""
        return {
            'id': self.id,
            'command': self.command,
            'path': self.path,
            'size': self.size,
            'success': self.success,
            'username': self.username,
            'client_ip': self.client_ip,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }


def init_db(database_url: str = DATABASE_URL):
    """Create the engine, bind the session factory and create all tables."""
    global engine

    kwargs = {'pool_pre_ping': True}
    if database_url.startswith('sqlite'):
        # Sessions run on worker threads
        kwargs['connect_args'] = {'check_same_thread': False}
        if database_url in ('sqlite://', 'sqlite:///:memory:'):
            # One shared connection, otherwise every thread sees an empty database
            kwargs['poolclass'] = StaticPool

    if engine is not None:
        engine.dispose()
    engine = create_engine(database_url, **kwargs)
    SessionLocal.remove()
    SessionLocal.configure(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Audit database ready at {engine.url.render_as_string(hide_password=True)}")
    return engine


def get_db():
    """Get a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        SessionLocal.remove()
