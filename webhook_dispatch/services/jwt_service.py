"""
JWT verification against the identity provider.

Bearer tokens are issued by the identity provider and signed with the
shared JWT secret; this service only verifies them (token creation is
kept for local tooling and tests).
"""
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from webhook_dispatch.config import Settings, settings as default_settings


class JWTService:
    """Service for creating and verifying JWT tokens."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    def create_token(
        self,
        user_id: str,
        org_id: str,
        role: str = "member",
        email: str | None = None,
        expires_minutes: int = 60
    ) -> str:
        """
        Create a JWT token with user context.

        Args:
            user_id: User's unique ID
            org_id: Organisation ID
            role: User role
            email: User's email
            expires_minutes: Lifetime of the token

        Returns:
            Encoded JWT token string
        """
        payload = {
            "sub": user_id,
            "org_id": org_id,
            "role": role,
            "email": email,
            "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
        }
        if self.settings.JWT_AUDIENCE:
            payload["aud"] = self.settings.JWT_AUDIENCE

        return jwt.encode(payload, self.settings.JWT_SECRET_KEY, algorithm=self.settings.JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict | None:
        """
        Verify and decode a JWT token.

        Args:
            token: JWT token string

        Returns:
            Decoded payload dict or None if invalid
        """
        options = {"verify_aud": bool(self.settings.JWT_AUDIENCE)}
        try:
            payload = jwt.decode(
                token,
                self.settings.JWT_SECRET_KEY,
                algorithms=[self.settings.JWT_ALGORITHM],
                audience=self.settings.JWT_AUDIENCE,
                options=options
            )
            return payload
        except JWTError:
            return None
