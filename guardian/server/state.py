from __future__ import annotations

import logging
from typing import Optional

from guardian.engine.service import GuardianService

logger = logging.getLogger(__name__)


class ApplicationState:
    _instance = None

    @classmethod
    def instance(cls) -> ApplicationState:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self):
        self.service: Optional[GuardianService] = None

    def get_service(self) -> GuardianService:
        if self.service is None:
            self.service = GuardianService.from_config()
            logger.info(f"[API] Guardian service ready ({len(self.service.registry)} patterns)")
        return self.service


def get_state() -> ApplicationState:
    return ApplicationState.instance()


def get_service() -> GuardianService:
    return get_state().get_service()


def set_service(service: Optional[GuardianService]) -> None:
    """Swap the process-wide service (tests); None rebuilds it from config on next use."""
    get_state().service = service
