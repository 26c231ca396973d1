"""
Application context built once at startup.

Holds the settings and the long-lived collaborators (database engine, answer
service) so handlers receive them through FastAPI dependencies instead of
module globals. Each collaborator reports an explicit ServiceStatus.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from homework_helper.config import Settings
from homework_helper.database import ping_database
from homework_helper.services.answer_service import AnswerService

logger = logging.getLogger(__name__)


class ServiceStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass
class AppContext:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    answer_service: AnswerService

    @classmethod
    def create(
        cls,
        settings: Settings,
        engine: Engine,
        session_factory: sessionmaker,
        answer_service: Optional[AnswerService] = None,
    ) -> "AppContext":
        context = cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            answer_service=answer_service or AnswerService(settings),
        )
        if not settings.answer_service_configured:
            logger.warning("OPENAI_API_KEY not set - questions cannot be answered")
        if not settings.auth_enabled:
            logger.warning(
                "FIREBASE_PROJECT_ID not set - running in open mode "
                "(students act as dev-user, admin checks are skipped)"
            )
        return context

    def database_status(self) -> ServiceStatus:
        if ping_database(self.engine):
            return ServiceStatus.AVAILABLE
        return ServiceStatus.UNAVAILABLE

    def answer_service_status(self) -> ServiceStatus:
        if self.answer_service.is_healthy:
            return ServiceStatus.AVAILABLE
        return ServiceStatus.UNAVAILABLE


def get_app_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context created in the lifespan."""
    return request.app.state.context


def get_settings(request: Request) -> Settings:
    return get_app_context(request).settings


def get_answer_service(request: Request) -> AnswerService:
    return get_app_context(request).answer_service
