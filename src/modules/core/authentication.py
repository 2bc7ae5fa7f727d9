"""Bearer JWT authentication backend for Django REST Framework.

Tokens are minted by the external identity service and signed with a
shared key (HS256 by default).  This backend only verifies them; it never
issues tokens.  The raw token is returned as ``request.auth`` so the
orders service can forward it to the catalog service unchanged.

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401.
* ``algorithms`` is hard-coded to the configured value, never derived
  from the incoming token header.
* Audience and issuer are validated when configured.
"""

from __future__ import annotations

import jwt as pyjwt
import structlog
from django.conf import settings
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from modules.core.permissions import Permission, permissions_for_roles

logger = structlog.get_logger(__name__)


class TokenUser:
    """Lightweight user object for requests authenticated by bearer token.

    Identity is the source of truth; there is no local ``User`` row.
    Views read ``request.user.sub`` for ownership and
    ``request.user.permissions`` for authorisation.
    """

    def __init__(self, payload: dict):
        self.payload = payload
        self.sub: str = str(payload.get("sub", ""))
        roles = payload.get(settings.JWT_ROLES_CLAIM, [])
        if isinstance(roles, str):
            roles = [roles]
        self.roles: list[str] = list(roles)
        self.permissions = permissions_for_roles(self.roles)

    # DRF checks
    is_authenticated = True
    is_active = True

    @property
    def pk(self) -> str:
        return self.sub

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.permissions

    def __str__(self) -> str:  # pragma: no cover
        return self.sub


class BearerTokenAuthentication(BaseAuthentication):
    """DRF authentication class that validates identity-issued JWTs."""

    keyword = "Bearer"

    # ------------------------------------------------------------------
    # Public API (DRF contract)
    # ------------------------------------------------------------------

    def authenticate(self, request):
        """Return ``(TokenUser, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        token = self._extract_token(header)
        payload = self._decode_token(token)
        user = TokenUser(payload)
        if not user.sub:
            raise AuthenticationFailed("Token has no subject.")

        logger.info("jwt_authenticated", sub=user.sub, roles=user.roles)
        return (user, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _decode_token(token: str) -> dict:
        options = {
            "verify_aud": bool(settings.JWT_AUDIENCE),
            "verify_iss": bool(settings.JWT_ISSUER),
            "require": ["sub", "exp"],
        }
        try:
            payload = pyjwt.decode(
                token,
                settings.JWT_SIGNING_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                audience=settings.JWT_AUDIENCE or None,
                issuer=settings.JWT_ISSUER or None,
                options=options,
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc
        return payload
