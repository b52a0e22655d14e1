"""Post-stream usage accounting."""

from datetime import UTC, datetime

import structlog

from chatgate.models import UsageLogEntry
from chatgate.storage.base import AccountStore

logger = structlog.get_logger(__name__)

BYTES_PER_TOKEN = 4


def estimate_tokens(byte_length: int) -> int:
    """Rough token estimate: ceil(bytes / 4). Zero bytes is zero tokens."""
    return (byte_length + BYTES_PER_TOKEN - 1) // BYTES_PER_TOKEN


class UsageRecorder:
    """Writes one usage log entry when a relayed stream completes."""

    def __init__(self, store: AccountStore) -> None:
        self.store = store

    async def record(self, account_id: str, byte_length: int, model: str) -> UsageLogEntry | None:
        """Append the entry. Failures are logged only; the client already has its answer."""
        entry = UsageLogEntry(
            user_id=account_id,
            tokens_used=estimate_tokens(byte_length),
            model=model,
            created_at=datetime.now(UTC),
        )
        try:
            await self.store.append_usage_log(entry)
        except Exception:
            logger.error(
                "usage_log_write_failed",
                account_id=account_id,
                model=model,
                tokens_used=entry.tokens_used,
                exc_info=True,
            )
            return None

        logger.debug("usage_recorded", account_id=account_id, model=model, tokens_used=entry.tokens_used)
        return entry
