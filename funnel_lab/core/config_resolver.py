"""
AI configuration resolution.

Walks the configuration hierarchy from the most specific level to the
least specific one and returns the first active configuration found:

1. service - configuration for the requested service
2. plan    - configuration for the caller's subscription plan
3. global  - the platform-wide default
"""

import logging
from typing import List, Optional, Tuple

from .errors import ConfigNotFound
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import AIConfiguration, ConfigLevel
from ..storage.repository import fetch_active_configuration

logger = logging.getLogger(__name__)


class ConfigResolver:
    """Read-only resolver; safe to share between concurrent requests."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def resolve(self, service_identifier: str, plan_name: Optional[str] = None) -> AIConfiguration:
        """Resolve the effective configuration for a service.

        Args:
            service_identifier: Service name, e.g. "funnel_analysis"
            plan_name: Caller's plan; the plan level is skipped when None

        Returns:
            The most specific active configuration

        Raises:
            ConfigNotFound: If no consulted level has an active configuration
        """
        for level, identifier in self._chain(service_identifier, plan_name):
            config = fetch_active_configuration(level, identifier, self.db_path)
            if config is not None:
                logger.debug(
                    "Resolved %s configuration%s -> %s",
                    level.value,
                    f" '{identifier}'" if identifier else "",
                    config.model.model_name
                )
                return config

        raise ConfigNotFound(
            f"No active AI configuration for service '{service_identifier}'"
            + (f" or plan '{plan_name}'" if plan_name else "")
            + " and no global default"
        )

    @staticmethod
    def _chain(service_identifier: str, plan_name: Optional[str]) -> List[Tuple[ConfigLevel, Optional[str]]]:
        chain = [(ConfigLevel.SERVICE, service_identifier)]
        if plan_name:
            chain.append((ConfigLevel.PLAN, plan_name))
        chain.append((ConfigLevel.GLOBAL, None))
        return chain
