"""
Settings Repository - AppSettings singleton stored in the 'settings' blob.
"""

import logging
from pydantic import ValidationError

from config import get_settings
from models import AppSettings
from repositories.state_repository import StateRepository

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"


class SettingsRepository:
    """Repository for the AppSettings singleton."""

    @staticmethod
    def get() -> AppSettings:
        """Load settings, falling back to configured defaults."""
        data = StateRepository.load(SETTINGS_KEY)
        if isinstance(data, dict):
            try:
                return AppSettings.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Invalid stored settings, using defaults: {e}")

        config = get_settings()
        return AppSettings(fee_rate=config.default_fee_rate, cash=config.default_cash)

    @staticmethod
    def save(app_settings: AppSettings) -> AppSettings:
        """Rewrite the settings blob."""
        StateRepository.save(SETTINGS_KEY, app_settings.model_dump(mode="json"))
        return app_settings
