"""
Settings repository: the single ``library_settings`` row.

Every circulation operation reads the policy through ``get_settings``. The
row is created with default values on first access; concurrent first
accesses converge on one row because the primary key is fixed.
"""

import logging
import math
from typing import Any

from sqlalchemy.exc import IntegrityError

from ..models.settings import LibrarySettings
from .errors import LibraryError, ValidationError
from .repository import BaseRepository
from .schema import (
    DEFAULT_BORROWING_LIMIT,
    DEFAULT_FINE_PER_DAY,
    DEFAULT_LOAN_PERIOD_DAYS,
    SETTINGS_ROW_ID,
)
from .schema import LibrarySettings as LibrarySettingsDB
from .session import safe_query

logger = logging.getLogger(__name__)

_COERCERS = {
    "borrowing_limit": int,
    "loan_period_days": int,
    "fine_per_day": float,
}

# Lowest accepted value per field
_MINIMUMS = {
    "borrowing_limit": 1,
    "loan_period_days": 1,
    "fine_per_day": 0.0,
}


class SettingsRepository(BaseRepository[LibrarySettingsDB, LibrarySettings]):
    """Get-or-create and upsert access to the library policy."""

    @property
    def model_class(self):
        return LibrarySettingsDB

    @property
    def response_schema(self):
        return LibrarySettings

    def _load(self) -> LibrarySettingsDB | None:
        return safe_query(
            self.session,
            lambda s: s.get(LibrarySettingsDB, SETTINGS_ROW_ID),
            "Failed to read library settings",
        )

    def get_or_create(self) -> LibrarySettingsDB:
        """
        Return the settings row, inserting defaults if it does not exist.

        The insert is committed in its own transaction. If another session
        created the row first, the unique primary key rejects the insert;
        we roll back and read the winner's row.
        """
        settings = self._load()
        if settings is not None:
            return settings

        logger.info("No library settings found, creating defaults")
        self.session.add(
            LibrarySettingsDB(
                id=SETTINGS_ROW_ID,
                borrowing_limit=DEFAULT_BORROWING_LIMIT,
                loan_period_days=DEFAULT_LOAN_PERIOD_DAYS,
                fine_per_day=DEFAULT_FINE_PER_DAY,
            )
        )
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info("Library settings were created concurrently, re-reading")

        settings = self._load()
        if settings is None:
            raise LibraryError("Library settings could not be created")
        return settings

    def get_settings(self) -> LibrarySettings:
        """Current policy (created with defaults 5 / 14 / 1.0 on first use)."""
        return self._to_response_model(self.get_or_create())

    def update_settings(
        self, values: dict[str, Any], admin_id: int | None = None
    ) -> LibrarySettings:
        """
        Upsert the settings row.

        Values are coerced to their numeric types; unknown keys are ignored.
        The borrowing limit and loan period must be at least 1 and the fine
        per day at least 0.

        Raises:
            ValidationError: If a value is not numeric, not finite or out of range
        """
        coerced: dict[str, Any] = {}
        for field, coerce in _COERCERS.items():
            if values.get(field) is None:
                continue
            raw = values[field]
            try:
                # int("7.0") fails, so integer fields go through float first
                coerced[field] = int(float(raw)) if coerce is int else float(raw)
            except (TypeError, ValueError, OverflowError) as e:
                raise ValidationError(f"{field} must be numeric, got {raw!r}") from e
            if not math.isfinite(coerced[field]):
                raise ValidationError(f"{field} must be finite, got {raw!r}")
            if coerced[field] < _MINIMUMS[field]:
                raise ValidationError(f"{field} must be at least {_MINIMUMS[field]}, got {raw!r}")

        settings = self.get_or_create()
        for field, value in coerced.items():
            setattr(settings, field, value)
        if admin_id is not None:
            settings.updated_by_admin_id = admin_id

        self._commit("update library settings")
        self.session.refresh(settings)
        logger.info("Library settings updated: %s", coerced)
        return self._to_response_model(settings)
