from typing import List, Sequence
import logging

from .gateway import PERMANENT_ERROR_CODES
from .metrics import device_tokens_pruned_total
from .schemas import DeviceTokenRecord, SendResult
from .store import ReminderStore

logger = logging.getLogger(__name__)


def prune_invalid_tokens(
    store: ReminderStore,
    user_id: str,
    tokens: Sequence[DeviceTokenRecord],
    results: Sequence[SendResult],
) -> List[DeviceTokenRecord]:
    """Delete tokens whose send failed with a permanent error. Returns the deleted records.

    ``results`` is aligned with ``tokens`` by index. Transient failures are only logged.
    """
    if len(results) != len(tokens):
        logger.warning(
            f"[Pruner] user={user_id}: {len(results)} results for {len(tokens)} tokens; "
            "only the aligned prefix is considered"
        )

    pruned = []
    for record, result in zip(tokens, results):
        if result.success:
            continue
        if result.error_code not in PERMANENT_ERROR_CODES:
            logger.info(f"[Pruner] user={user_id} token {record.token[:12]}... kept after transient error {result.error_code}")
            continue
        try:
            store.delete_device_token(user_id, record.id)
        except Exception as e:
            logger.error(f"[Pruner] user={user_id} failed to delete token {record.id}: {e!r}")
            continue
        device_tokens_pruned_total.labels(error_code=result.error_code).inc()
        logger.info(f"[Pruner] user={user_id} deleted token {record.token[:12]}... ({result.error_code})")
        pruned.append(record)
    return pruned
