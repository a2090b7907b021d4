from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol, Tuple

from sitegate.config import Settings
from sitegate.logging import get_logger
from sitegate.storage.models import User
from sitegate.storage.redis_cache import RedisCache
from sitegate.tokens import is_placeholder

logger = get_logger(__name__)


class UserStore(Protocol):
    def get_user(self, user_id: str) -> Optional[User]: ...

    def first_user_with_role(self, role: str) -> Optional[User]: ...


@dataclass
class Principal:
    user_id: str
    role: str
    email: Optional[str] = None
    placeholder: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class TokenService:
    """Bearer token issuance, refresh and verification."""

    def __init__(
        self,
        store: UserStore,
        cache: Optional[RedisCache],
        settings: Settings,
    ) -> None:
        self.store = store
        self.cache = cache
        self.settings = settings
        self.revoked_refresh_tokens: set[str] = set()
        # Allowance for small clock skew across nodes
        self._clock_skew_leeway = timedelta(seconds=30)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    # -- issuance ------------------------------------------------------------

    def issue_tokens(self, user: User) -> dict[str, Any]:
        now = self._now()
        access_ttl = self.settings.access_token_ttl_minutes
        access_exp = int((now + timedelta(minutes=access_ttl)).timestamp())
        refresh_exp = int(
            (now + timedelta(minutes=self.settings.refresh_token_ttl_minutes)).timestamp()
        )
        base = {
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
            "sub": user.id,
            "role": user.role,
        }
        access_token = self._encode_jwt(
            {**base, "token_type": "access", "jti": str(uuid.uuid4()), "exp": access_exp}
        )
        refresh_token = self._encode_jwt(
            {**base, "token_type": "refresh", "jti": str(uuid.uuid4()), "exp": refresh_exp}
        )
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": access_ttl * 60,
        }

    async def refresh(self, refresh_token: str) -> Optional[Tuple[User, dict[str, Any]]]:
        """Exchange a refresh token for a new token pair, rotating the refresh token.

        Returns None when the token is invalid, expired, revoked, or belongs to
        an unknown or inactive user.
        """
        if is_placeholder(refresh_token):
            if not self.settings.development:
                logger.warning("placeholder_refresh_rejected")
                return None
            return self._refresh_placeholder(refresh_token)

        payload = self._decode_jwt(refresh_token)
        if not payload or payload.get("token_type") != "refresh":
            return None
        jti = payload.get("jti")
        if not jti or await self._is_refresh_revoked(jti):
            logger.info("refresh_token_revoked", jti=jti)
            return None
        user = self.store.get_user(payload.get("sub"))
        if not user or not user.is_active:
            return None
        await self._revoke_refresh_token(jti, payload.get("exp"))
        tokens = self.issue_tokens(user)
        logger.info("tokens_refreshed", user_id=user.id, role=user.role)
        return user, tokens

    async def revoke(self, refresh_token: str) -> bool:
        payload = self._decode_jwt(refresh_token)
        if not payload or payload.get("token_type") != "refresh" or not payload.get("jti"):
            return False
        await self._revoke_refresh_token(payload["jti"], payload.get("exp"))
        return True

    # -- verification --------------------------------------------------------

    def authenticate(self, authorization: Optional[str]) -> Optional[Principal]:
        token = self._extract_bearer(authorization)
        if not token:
            return None
        if is_placeholder(token):
            if not self.settings.development:
                logger.warning("placeholder_token_rejected")
                return None
            return self._placeholder_principal(token)
        payload = self._decode_jwt(token)
        if not payload or payload.get("token_type") != "access":
            return None
        user = self.store.get_user(payload.get("sub"))
        if not user or not user.is_active:
            return None
        if payload.get("role") != user.role:
            # Role changed since issuance; force a refresh
            return None
        return Principal(user_id=user.id, role=user.role, email=user.email)

    def _extract_bearer(self, header: Optional[str]) -> Optional[str]:
        if not header:
            return None
        lower = header.lower()
        if not lower.startswith("bearer "):
            return None
        token = header.split(" ", 1)[1].strip()
        return token or None

    # -- development-mode placeholder tokens ---------------------------------

    def _placeholder_claims(self, token: str) -> dict[str, Any]:
        encoded = token.split("-")[-1]
        try:
            padding = "=" * ((4 - len(encoded) % 4) % 4)
            claims = json.loads(base64.b64decode(encoded + padding))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            return {"role": "admin"}
        return claims if isinstance(claims, dict) else {"role": "admin"}

    def _placeholder_user(self, token: str) -> Optional[User]:
        role = self._placeholder_claims(token).get("role") or "admin"
        user = self.store.first_user_with_role(role)
        if user is None:
            user = self.store.first_user_with_role("admin")
        return user

    def _placeholder_principal(self, token: str) -> Optional[Principal]:
        user = self._placeholder_user(token)
        if not user:
            logger.warning("placeholder_token_no_user")
            return None
        logger.debug("placeholder_token_accepted", user_id=user.id, role=user.role)
        return Principal(user_id=user.id, role=user.role, email=user.email, placeholder=True)

    def _refresh_placeholder(self, refresh_token: str) -> Optional[Tuple[User, dict[str, Any]]]:
        user = self._placeholder_user(refresh_token)
        if not user:
            return None
        claims = {"userId": user.id, "role": user.role, "iat": int(time.time())}
        encoded = base64.b64encode(json.dumps(claims).encode()).decode()
        tokens = {
            "access_token": f"mock-{encoded}",
            "refresh_token": f"mock-refresh-{encoded}",
            "token_type": "bearer",
            "expires_in": self.settings.access_token_ttl_minutes * 60,
        }
        logger.info("placeholder_tokens_refreshed", user_id=user.id)
        return user, tokens

    # -- JWT primitives ------------------------------------------------------

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        return self._encode_segment(
            hmac.new(
                self.settings.jwt_secret.encode(), signing_input.encode(), hashlib.sha256
            ).digest()
        )

    def _encode_jwt(self, payload: dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(json.dumps(header, separators=(",", ":")).encode())
        payload_enc = self._encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _decode_jwt(self, token: str) -> Optional[dict[str, Any]]:
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Reject anything but HS256 to avoid algorithm confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
            if header.get("alg") != "HS256":
                logger.warning("jwt_invalid_algorithm", alg=header.get("alg"))
                return None
        except Exception:
            logger.warning("jwt_header_decode_failed")
            return None

        if not hmac.compare_digest(self._sign(f"{header_b64}.{payload_b64}"), sig_b64):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except Exception as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if payload.get("iss") != self.settings.jwt_issuer:
            return None
        if payload.get("aud") != self.settings.jwt_audience:
            return None
        try:
            exp_ts = float(payload.get("exp"))
        except (TypeError, ValueError):
            return None
        if exp_ts <= time.time() - self._clock_skew_leeway.total_seconds():
            return None
        return payload

    async def _revoke_refresh_token(self, jti: str, exp: Any = None) -> None:
        self.revoked_refresh_tokens.add(jti)
        if isinstance(exp, (int, float)):
            ttl = max(int(exp - self._now().timestamp()), 0)
        else:
            ttl = self.settings.refresh_token_ttl_minutes * 60
        if self.cache:
            try:
                await self.cache.mark_refresh_revoked(jti, ttl)
            except Exception as exc:
                logger.warning("cache_revoked_refresh_token_failed", jti=jti, error=str(exc))

    async def _is_refresh_revoked(self, jti: str) -> bool:
        if jti in self.revoked_refresh_tokens:
            return True
        if self.cache:
            try:
                return await self.cache.is_refresh_revoked(jti)
            except Exception as exc:
                # Treat as revoked while the denylist is unreachable
                logger.warning(
                    "check_revoked_refresh_token_failed_defaulting_to_revoked",
                    jti=jti,
                    error=str(exc),
                )
                return True
        return False
