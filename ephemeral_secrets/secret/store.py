"""
Secret persistence on top of the host key/value store.
"""

from typing import List, Optional, Tuple
from loguru import logger
from ephemeral_secrets.constants import KV_PAGE_SIZE, SECRET_KEY_PREFIX
from ephemeral_secrets.host import HostAPI, HostError
from ephemeral_secrets.secret.exceptions import Corrupt, InvalidID, StoreUnavailable
from ephemeral_secrets.secret.schemas import Secret


def secret_key(secret_id: str) -> str:
    return f"{SECRET_KEY_PREFIX}{secret_id}"


def _decode(key: str, data: bytes) -> Secret:
    try:
        return Secret.deserialize(data)
    except (ValueError, TypeError) as exc:
        raise Corrupt(f"Failed to decode {key}: {exc}") from exc


class KVSecretStore:
    """
    Stores each secret under `secret_<id>`.  There are no transactions, a
    plain save is last-writer-wins; `compare_and_save` is the only
    conditional write.
    """

    def __init__(self, host: HostAPI):
        self.host = host

    @staticmethod
    def _check_id(secret_id: str):
        if not secret_id:
            raise InvalidID("secret ID cannot be empty")

    async def save(self, secret: Secret) -> None:
        self._check_id(secret.id)
        key = secret_key(secret.id)
        try:
            await self.host.kv_set(key, secret.serialize())
        except HostError as exc:
            raise StoreUnavailable(f"Failed to store {key}: {exc}") from exc

    async def get_versioned(self, secret_id: str) -> Tuple[Optional[Secret], Optional[bytes]]:
        """
        Load a secret along with the exact bytes it was stored as.
        """
        self._check_id(secret_id)
        key = secret_key(secret_id)
        try:
            data = await self.host.kv_get(key)
        except HostError as exc:
            raise StoreUnavailable(f"Failed to get {key}: {exc}") from exc
        if data is None:
            return None, None
        return _decode(key, data), data

    async def get(self, secret_id: str) -> Optional[Secret]:
        secret, _ = await self.get_versioned(secret_id)
        return secret

    async def compare_and_save(self, updated: Secret, expected: Optional[bytes]) -> bool:
        """
        Write `updated` only if the stored bytes still equal `expected`.
        """
        self._check_id(updated.id)
        key = secret_key(updated.id)
        try:
            return await self.host.kv_compare_and_set(key, expected, updated.serialize())
        except HostError as exc:
            raise StoreUnavailable(f"Failed to store {key}: {exc}") from exc

    async def delete(self, secret_id: str) -> None:
        self._check_id(secret_id)
        key = secret_key(secret_id)
        try:
            await self.host.kv_delete(key)
        except HostError as exc:
            raise StoreUnavailable(f"Failed to delete {key}: {exc}") from exc

    async def list(self) -> List[Secret]:
        """
        Enumerate every secret.  Unreadable entries are logged and skipped.
        """
        secrets = []
        seen = set()
        page = 0
        while True:
            try:
                keys = await self.host.kv_list(page, KV_PAGE_SIZE)
            except HostError as exc:
                raise StoreUnavailable(f"Failed to list secrets: {exc}") from exc
            for key in keys:
                if len(key) <= len(SECRET_KEY_PREFIX) or not key.startswith(SECRET_KEY_PREFIX):
                    continue
                # Keys added mid-listing shift later pages, so one may repeat.
                if key in seen:
                    continue
                seen.add(key)
                try:
                    data = await self.host.kv_get(key)
                except HostError as exc:
                    logger.error(f"Failed to get secret {key=}: {exc}")
                    continue
                if data is None:
                    continue
                try:
                    secrets.append(_decode(key, data))
                except Corrupt as exc:
                    logger.error(f"Skipping unreadable secret {key=}: {exc}")
            if len(keys) < KV_PAGE_SIZE:
                break
            page += 1
        return secrets

    async def list_expired(self, now_ms: int) -> List[Secret]:
        return [secret for secret in await self.list() if 0 < secret.expires_at < now_ms]
