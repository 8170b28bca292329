"""
Recommendation event logging.

Every event is written to the structured log and, when the ``event_logs``
table is reachable, stored as a row for later querying. Storing is
best-effort: failures are logged and never reach the recommendation path.
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from readnext.models import EventLog

logger = logging.getLogger(__name__)


class EventRecorder:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record(
        self,
        event_name: str,
        user_id: Optional[UUID] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Log one event and store it in its own session.

        Args:
            event_name: "recommendations_generated" or "recommendation_interaction"
            user_id: user the event belongs to, if any
            properties: JSON-serializable payload

        Returns True when the row was committed.
        """
        logger.info(
            "event_logged",
            extra={
                "event_name": event_name,
                "user_id": str(user_id) if user_id else None,
                "properties": properties,
            },
        )
        with self._session_factory() as db:
            try:
                db.add(EventLog(event_name=event_name, user_id=user_id, properties=properties))
                db.commit()
                return True
            except (OperationalError, ProgrammingError) as e:
                db.rollback()
                if "event_logs" in str(e).lower():
                    logger.warning("event_logs table missing; run init_db(). Event %s not stored.", event_name)
                else:
                    logger.warning("Could not store event %s for user %s: %s", event_name, user_id, e, exc_info=True)
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Could not store event %s for user %s: %s", event_name, user_id, e, exc_info=True)
        return False
