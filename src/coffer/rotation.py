"""Key Rotation - re-encrypt the whole store under a new master key.

Everything happens inside one store transaction: if any field fails to
decrypt under the old key, the transaction rolls back and the vault stays
under the old key and parameters.

Security Note:
    Plaintext exists in memory only while each field is re-encrypted.
    Never log plaintext or ciphertext values.
"""

import logging
from dataclasses import dataclass

from .cipher import ItemCipher
from .crypto import Envelope, KdfParams, KeyLike, create_canary, decrypt_field
from .models import utcnow
from .store import VaultStore

logger = logging.getLogger(__name__)


@dataclass
class RotationStats:
    """Counts of what a rotation re-encrypted."""

    items: int = 0
    fields: int = 0
    blobs: int = 0


def rotate_key(
    store: VaultStore,
    old_key: KeyLike,
    new_key: KeyLike,
    new_params: KdfParams,
) -> RotationStats:
    """Re-encrypt every item, blob and the canary, then commit new params.

    Raises:
        CryptoError: If any envelope fails to authenticate under ``old_key``.
        StorageError: If the transaction cannot be written or committed.
    """
    old = ItemCipher(old_key)
    new = ItemCipher(new_key)
    stats = RotationStats()

    logger.info("Starting key rotation (preset=%s)", new_params.preset)

    with store.transaction():
        record = store.require_record()
        # Proves old_key is the vault key before anything is rewritten
        decrypt_field(old_key, Envelope.from_bytes(record.canary))

        for item in store.all_items():
            item.name = old.reseal(item.name, new)
            item.tags = old.reseal(item.tags, new)
            stats.fields += 2
            if item.comments is not None:
                item.comments = old.reseal(item.comments, new)
                stats.fields += 1
            if item.content_ref is not None:
                item.content_ref = old.reseal(item.content_ref, new)
                stats.fields += 1
            store.update_item(item)
            stats.items += 1
            logger.debug("Re-encrypted item %s", item.id)

        for blob_id, data in store.all_blobs():
            store.put_blob(blob_id, old.reseal(data, new))
            stats.blobs += 1

        record.kdf_params = new_params
        record.canary = create_canary(new_key).to_bytes()
        record.failed_attempts = 0
        record.last_failed_at = None
        record.updated_at = utcnow()
        store.put_record(record)

    logger.info(
        "Key rotation committed: %d items, %d fields, %d blobs",
        stats.items,
        stats.fields,
        stats.blobs,
    )
    return stats
