"""ApiKeyRepository: hashed API keys.

The plaintext key is generated by the caller (``generate_api_key``), shown to
the user once and never stored or logged. Commands carry only the hash and
the lookup prefix.
"""

import hashlib
import secrets
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update

from datapod.core.exceptions import ValidationError
from datapod.db.models.api_key import ApiKey
from datapod.events.envelope import EventSource
from datapod.repositories.base import ProjectionRepository

logger = structlog.get_logger(__name__)

KEY_PREFIX = "dp_"
PREFIX_LENGTH = 12


def hash_api_key(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def generate_api_key() -> tuple[str, str, str]:
    """Return ``(plaintext, prefix, sha256_hash)`` for a new key."""
    plaintext = KEY_PREFIX + secrets.token_urlsafe(32)
    return plaintext, plaintext[:PREFIX_LENGTH], hash_api_key(plaintext)


class ApiKeyRepository(ProjectionRepository[ApiKey]):
    model = ApiKey
    family = "apiKeys"
    subject_type = "api_key"
    resource_name = "API key"
    field_map = {
        "keyName": "key_name",
        "key_name": "key_name",
        "keyPrefix": "key_prefix",
        "key_prefix": "key_prefix",
        "keyHash": "key_hash",
        "key_hash": "key_hash",
        "scope": "scope",
        "expiresAt": "expires_at",
        "expires_at": "expires_at",
    }
    summary_fields = ("key_name", "key_prefix", "is_active")
    secret_fields = ("key_hash",)

    def _create_values(self, data: dict) -> dict:
        values = super()._create_values(data)
        if not values.get("key_hash") or not values.get("key_prefix"):
            raise ValidationError("API key commands must carry keyHash and keyPrefix")
        if isinstance(values.get("expires_at"), str):
            values["expires_at"] = datetime.fromisoformat(values["expires_at"])
        return values

    def _update_values(self, data: dict) -> dict:
        # Hash and prefix are immutable; rotate by creating a new key
        values = super()._update_values(data)
        return {k: v for k, v in values.items() if k in ("key_name", "scope")}

    async def revoke(
        self,
        row_id: str,
        user_id: str,
        reason: str | None = None,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> ApiKey:
        """Deactivate an active key. Raises NotFoundError if it is not the caller's active key."""
        now = datetime.now(timezone.utc)
        await self._scoped_write(
            row_id,
            user_id,
            {"is_active": False, "revoked_at": now, "revoked_reason": reason, "updated_at": now},
            ApiKey.is_active.is_(True),
        )
        row = await self.get(row_id, user_id)
        logger.info("api_key_revoked", row_id=row_id, key_prefix=row.key_prefix)
        await self.emit_completed(row, "revoke", user_id, causation_id, correlation_id, source)
        return row

    async def verify(self, plaintext: str) -> ApiKey | None:
        """Resolve a presented key to its active row and record the use."""
        key_hash = hash_api_key(plaintext)
        async with self.session_factory() as session:
            result = await session.execute(
                select(ApiKey).where(
                    ApiKey.key_prefix == plaintext[:PREFIX_LENGTH],
                    ApiKey.key_hash == key_hash,
                    ApiKey.is_active.is_(True),
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            now = datetime.now(timezone.utc)
            expires_at = row.expires_at
            if expires_at is not None:
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=timezone.utc)
                if expires_at <= now:
                    logger.info("api_key_expired", key_prefix=row.key_prefix)
                    return None

            await session.execute(
                update(ApiKey)
                .where(ApiKey.id == row.id)
                .values(last_used_at=now, usage_count=ApiKey.usage_count + 1)
            )
            await session.commit()
            return row
