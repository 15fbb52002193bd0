import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWKClient
from pydantic import EmailStr, TypeAdapter, ValidationError
from pymongo.database import Database

from config import settings
from database import get_db
from errors import Unauthenticated
from schemas import User

logger = logging.getLogger(__name__)


class IdentityVerifier:
    """Validates bearer credentials and yields their claims.

    With a JWKS URL tokens are checked as RS256 against the provider's
    published keys; otherwise a shared HS256 secret is used (dev and tests).
    """

    def __init__(self, secret: Optional[str] = None, jwks_url: Optional[str] = None,
                 audience: Optional[str] = None, issuer: Optional[str] = None):
        self.secret = secret
        self.jwks_url = jwks_url
        self.audience = audience
        self.issuer = issuer
        self._jwk_client = PyJWKClient(jwks_url) if jwks_url else None

    def verify(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise Unauthenticated("Missing authorization header")
        options = {"verify_aud": self.audience is not None}
        try:
            if self._jwk_client is not None:
                key = self._jwk_client.get_signing_key_from_jwt(token).key
                claims = jwt.decode(token, key, algorithms=["RS256"], audience=self.audience,
                                    issuer=self.issuer, options=options)
            else:
                claims = jwt.decode(token, self.secret, algorithms=["HS256"], audience=self.audience,
                                    issuer=self.issuer, options=options)
        except jwt.PyJWTError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise Unauthenticated("Invalid or expired token") from exc
        if not claims.get("sub"):
            raise Unauthenticated("Token has no subject")
        return claims


@lru_cache(maxsize=1)
def get_verifier() -> IdentityVerifier:
    return IdentityVerifier(
        secret=settings.AUTH_SECRET,
        jwks_url=settings.AUTH_JWKS_URL,
        audience=settings.AUTH_AUDIENCE,
        issuer=settings.AUTH_ISSUER,
    )


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


_email_adapter = TypeAdapter(EmailStr)


def profile_email(value: Any) -> Optional[str]:
    """Email claim if it is a well-formed address, else None."""
    if not value:
        return None
    try:
        return _email_adapter.validate_python(value)
    except ValidationError:
        logger.warning("Dropping malformed email claim %r", value)
        return None


def ensure_user(db: Database, claims: Dict[str, Any]) -> str:
    """Create the profile on first sight; existing profiles are left untouched."""
    uid = claims["sub"]
    name_parts = (claims.get("name") or "").split(" ")
    profile = User(
        uid=uid,
        first_name=name_parts[0],
        last_name=" ".join(name_parts[1:]),
        profile_picture=claims.get("picture") or "",
        email=profile_email(claims.get("email")),
    )
    result = db["users"].update_one(
        {"_id": uid},
        {"$setOnInsert": profile.model_dump(by_alias=True)},
        upsert=True,
    )
    if result.upserted_id is not None:
        logger.info("Created user profile %s", uid)
    return uid


def get_current_user(authorization: Optional[str] = Header(None),
                     db: Database = Depends(get_db),
                     verifier: IdentityVerifier = Depends(get_verifier)) -> str:
    claims = verifier.verify(bearer_token(authorization))
    return ensure_user(db, claims)


def get_optional_user(authorization: Optional[str] = Header(None),
                      verifier: IdentityVerifier = Depends(get_verifier)) -> Optional[str]:
    token = bearer_token(authorization)
    if token is None:
        return None
    try:
        return verifier.verify(token)["sub"]
    except Unauthenticated as exc:
        logger.warning("Ignoring invalid credential on public route: %s", exc.message)
        return None
