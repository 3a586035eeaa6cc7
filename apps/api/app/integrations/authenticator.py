from __future__ import annotations

from collections.abc import Mapping

from sqlalchemy.orm import Session

from app.integrations.errors import AuthError
from app.integrations.models import Integration
from app.integrations.repository import IntegrationRepository

TEST_PATH_SUFFIX = "/test"


def detect_test_mode(path: str, query: Mapping[str, str]) -> bool:
    return (
        path.rstrip("/").endswith(TEST_PATH_SUFFIX)
        or query.get("test") == "1"
        or query.get("mode") == "test"
    )


class RequestAuthenticator:
    def __init__(self, repository: IntegrationRepository | None = None) -> None:
        self.repository = repository or IntegrationRepository()

    def authenticate(self, session: Session, token: str | None) -> Integration:
        """Resolve the token to its integration, active or not."""
        if not token:
            raise AuthError("authentication token not provided")
        integration = self.repository.get_by_token(session, token)
        if integration is None:
            raise AuthError("integration not found")
        return integration
