"""
State Repository - keyed JSON blob storage backing all persisted state.
Optimized with optional session parameter for transaction reuse.
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional
from sqlmodel import Session

from db_engine import get_engine
from models import StoredState

logger = logging.getLogger(__name__)


class StateRepository:
    """Repository for reading and rewriting StoredState blobs."""

    @staticmethod
    def load(key: str, session: Optional[Session] = None) -> Optional[Any]:
        """
        Load and decode the blob stored under a key.

        Args:
            key: Blob key ("settings", "portfolio", "watchlist", "transactions")
            session: Optional existing session for transaction reuse

        Returns:
            Decoded JSON value, or None if the key is missing or unreadable
        """
        def _load(sess: Session) -> Optional[Any]:
            row = sess.get(StoredState, key)
            if row is None:
                return None
            try:
                return json.loads(row.value)
            except ValueError as e:
                logger.warning(f"Discarding corrupt state blob '{key}': {e}")
                return None

        if session is not None:
            return _load(session)
        else:
            with Session(get_engine()) as session:
                return _load(session)

    @staticmethod
    def save(key: str, value: Any, session: Optional[Session] = None) -> StoredState:
        """
        Serialize a value and overwrite the blob stored under a key.

        Args:
            key: Blob key
            value: JSON-serializable value
            session: Optional existing session for transaction reuse

        Returns:
            The stored StoredState row
        """
        def _save(sess: Session) -> StoredState:
            payload = json.dumps(value, ensure_ascii=False)
            row = sess.get(StoredState, key)
            if row:
                row.value = payload
                row.updated_at = datetime.now()
            else:
                row = StoredState(key=key, value=payload)
            sess.add(row)
            sess.commit()
            sess.refresh(row)
            return row

        if session is not None:
            return _save(session)
        else:
            with Session(get_engine()) as session:
                return _save(session)
