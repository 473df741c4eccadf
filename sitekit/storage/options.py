"""Option storage: named JSON values in the `options` table."""

from __future__ import annotations

import copy
import logging
from typing import Any, List

from sqlalchemy import delete, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from sitekit.db.models import Option

logger = logging.getLogger(__name__)


class Options:
    """Read/write access to site options bound to one SQLAlchemy session.

    Every write commits immediately, mirroring the one-call-one-write
    behavior of an options API.
    """

    def __init__(self, session: Session):
        self.session = session

    def _row(self, name: str):
        return self.session.scalar(select(Option).where(Option.name == name))

    def has(self, name: str) -> bool:
        return self._row(name) is not None

    def get(self, name: str, default: Any = None) -> Any:
        row = self._row(name)
        if row is None:
            return default
        return copy.deepcopy(row.value)

    def set(self, name: str, value: Any) -> bool:
        row = self._row(name)
        if row is None:
            row = Option(name=name, value=value)
            self.session.add(row)
        else:
            row.value = value
            flag_modified(row, "value")
        self.session.commit()
        return True

    def delete(self, name: str) -> bool:
        result = self.session.execute(delete(Option).where(Option.name == name))
        self.session.commit()
        return bool(result.rowcount)

    def names(self, prefix: str = "") -> List[str]:
        stmt = select(Option.name).order_by(Option.name)
        if prefix:
            stmt = stmt.where(Option.name.startswith(prefix))
        return list(self.session.scalars(stmt).all())

    def delete_prefixed(self, prefix: str) -> int:
        """Delete every option whose name starts with `prefix`; returns the count."""
        result = self.session.execute(delete(Option).where(Option.name.startswith(prefix)))
        self.session.commit()
        logger.info("Deleted %s option(s) with prefix %r", result.rowcount, prefix)
        return int(result.rowcount or 0)
