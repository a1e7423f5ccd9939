"""
JWT-issuing auth provider backed by the user directory.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from support_relay.core.config import ConfigLoader
from support_relay.core.errors import AuthFailure, ValidationFailure
from support_relay.data_access.base import AuthProvider, UserDirectory
from support_relay.core.schemas import AuthResult, Role

logger = logging.getLogger(__name__)


class TokenAuthProvider(AuthProvider):
    """
    Issues signed access tokens for directory users.

    Customers are provisioned on first login when registration is allowed.
    Managers all act as the shared support desk identity, so the user id
    returned for a manager is always support_desk_id.
    """

    def __init__(
        self,
        user_directory: UserDirectory,
        secret_key: str,
        algorithm: str = "HS256",
        expiration_minutes: int = 60,
        support_desk_id: str = "manager",
        allow_registration: bool = True,
        config_loader: Optional[ConfigLoader] = None,
    ):
        """
        Args:
            allow_registration: Registration policy when no config loader is given
            config_loader: If given, auth.allow_registration is read from it on
                every login so a config reload takes effect immediately
        """
        self.user_directory = user_directory
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expiration_minutes = expiration_minutes
        self.support_desk_id = support_desk_id
        self.allow_registration = allow_registration
        self.config_loader = config_loader

    def registration_allowed(self) -> bool:
        if self.config_loader is not None:
            return self.config_loader.get_auth_config().allow_registration
        return self.allow_registration

    async def authenticate(self, username: str, role: str) -> AuthResult:
        if not isinstance(username, str) or not username.strip():
            raise AuthFailure("Username is required")
        username = username.strip()

        try:
            parsed_role = Role.parse(role)
        except ValidationFailure:
            raise AuthFailure(f"Unknown role: {role}")

        if self.registration_allowed():
            record = await self.user_directory.get_or_create(username, parsed_role)
        else:
            record = await self.user_directory.get_by_username(username)
            if record is None:
                raise AuthFailure(f"Unknown user: {username}")

        if record.role is not parsed_role:
            raise AuthFailure(f"User {username} cannot log in as {parsed_role.value}")

        if parsed_role is Role.MANAGER:
            user_id = self.support_desk_id
        elif parsed_role is Role.CUSTOMER:
            user_id = record.id
        else:
            raise AuthFailure(f"Unknown role: {role}")

        token = self.issue_token(user_id, username, parsed_role)
        return AuthResult(token=token, user_id=user_id, username=username, role=parsed_role)

    def issue_token(self, user_id: str, username: str, role: Role) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "username": username,
            "role": role.value,
            "iat": now,
            "exp": now + timedelta(minutes=self.expiration_minutes),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a token issued by this provider.

        Raises:
            AuthFailure: if the token is expired or invalid
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthFailure("Token expired")
        except jwt.InvalidTokenError as e:
            raise AuthFailure(f"Invalid token: {e}")
