# Admin feature flags
# services/feature_flags.py
"""Boolean admin settings backed by application settings, overridable at runtime"""

from typing import Dict, Optional
import structlog
from services.interfaces import SettingsProvider
from utils.config import Settings, settings as app_settings


logger = structlog.get_logger()

FLAG_FIELDS = {
    "EnableQueryCaching": "enable_query_caching",
    "EnableEnhancedSemanticCache": "enable_enhanced_semantic_cache",
}


class FeatureFlagService(SettingsProvider):

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or app_settings
        self._overrides: Dict[str, bool] = {}
        self.logger = logger.bind(service="FeatureFlagService")

    async def get_boolean_setting(self, name: str) -> bool:
        if name in self._overrides:
            return self._overrides[name]

        field = FLAG_FIELDS.get(name)
        if field is None:
            self.logger.debug("Unknown setting requested", setting=name)
            return False
        return bool(getattr(self.config, field))

    def set_boolean_setting(self, name: str, value: bool):
        self._overrides[name] = value
        self.logger.info("Setting overridden", setting=name, value=value)

    def clear_override(self, name: str):
        self._overrides.pop(name, None)
