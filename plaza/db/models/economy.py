"""Game economy database operations mixin.

Contains player stats (health, hunger, thirst, alcoholism) and the wallet
balance kept on the user profile. Transfers debit the sender, credit the
recipient and record the transaction in one batch.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from plaza.config import Config
from plaza.db.document_store import WriteOp
from plaza.db.keys import TRANSACTION_PREFIX, new_id, stats_key, transaction_key, user_key
from plaza.db.models.base import utcnow
from plaza.db.models.documents import PlayerStats, Transaction, UserProfile
from plaza.exceptions import ConflictError, NotFoundError, ValidationError, VersionConflict
from plaza.utils.logging import get_logger

if TYPE_CHECKING:
    from plaza.db.document_store import DocumentStore

logger = get_logger(__name__)

STAT_MIN = 0
STAT_MAX = 100


def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise ValidationError("Invalid amount", {"field": "amount"})


class EconomyMixin:
    """Mixin providing player stats and wallet operations."""

    _store: DocumentStore

    def get_player_stats(self, user_id: str) -> PlayerStats:
        """Return the player's stats, creating the defaults on first read."""
        key = stats_key(user_id)
        document = self._store.get(key)
        if document is not None:
            return PlayerStats.model_validate(document)

        stats = PlayerStats(user_id=user_id, **Config.STATS_DEFAULTS)
        try:
            self._store.compare_and_set(key, stats.to_document(), expected_version=0)
        except VersionConflict:
            # Lost the race to another first read; theirs is just as good
            return PlayerStats.model_validate(self._store.get(key))
        logger.debug("Player stats created", extra={"user_id": user_id})
        return stats

    def adjust_player_stats(self, user_id: str, changes: dict[str, int]) -> PlayerStats:
        """Add ``changes`` to the named stats, clamping each to 0..100."""
        unknown = set(changes) - set(Config.STATS_DEFAULTS)
        if unknown:
            raise ValidationError(f"Unknown stats: {', '.join(sorted(unknown))}")
        self.get_player_stats(user_id)

        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            for name, delta in changes.items():
                document[name] = max(STAT_MIN, min(STAT_MAX, document[name] + delta))
            return document

        updated = self._store.update(stats_key(user_id), mutate, "Player stats")
        return PlayerStats.model_validate(updated.document)

    def get_balance(self, user_id: str) -> int:
        document = self._store.get(user_key(user_id))
        if document is None:
            raise NotFoundError("Profile", {"user_id": user_id})
        return document.get("wallet_balance", 0)

    def add_money(self, user_id: str, amount: int) -> int:
        """Credit the user's wallet. Returns the new balance."""
        _require_positive(amount)

        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            document["wallet_balance"] = document.get("wallet_balance", 0) + amount
            return document

        updated = self._store.update(user_key(user_id), mutate, "Profile")
        balance = updated.document["wallet_balance"]
        logger.info("Money added", extra={"user_id": user_id, "amount": amount, "balance": balance})
        return balance

    def transfer_money(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        now: datetime | None = None,
    ) -> Transaction:
        """Move ``amount`` from one wallet to another atomically.

        Raises ValidationError for a non-positive amount or a self-transfer,
        NotFoundError if either profile is missing, and ConflictError when the
        sender cannot cover the amount.
        """
        _require_positive(amount)
        if from_user_id == to_user_id:
            raise ValidationError("Cannot transfer money to yourself", {"field": "to_user_id"})
        now = now or utcnow()

        def attempt() -> Transaction:
            sender_current = self._store.get_versioned(user_key(from_user_id))
            if sender_current is None:
                raise NotFoundError("Profile", {"user_id": from_user_id})
            recipient_current = self._store.get_versioned(user_key(to_user_id))
            if recipient_current is None:
                raise NotFoundError("Recipient", {"user_id": to_user_id})

            sender = UserProfile.model_validate(sender_current.document)
            recipient = UserProfile.model_validate(recipient_current.document)
            if sender.wallet_balance < amount:
                raise ConflictError(
                    "Insufficient funds",
                    {"balance": sender.wallet_balance, "amount": amount},
                )

            sender.wallet_balance -= amount
            recipient.wallet_balance += amount
            transaction = Transaction(
                transaction_id=new_id(),
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=amount,
                created_at=now,
            )
            self._store.write_batch(
                [
                    WriteOp.put(sender_current.key, sender.to_document(), sender_current.version),
                    WriteOp.put(
                        recipient_current.key, recipient.to_document(), recipient_current.version
                    ),
                    WriteOp.put(
                        transaction_key(transaction.transaction_id),
                        transaction.to_document(),
                        expected_version=0,
                    ),
                ]
            )
            return transaction

        transaction = self._store.run_optimistic("transfer_money", attempt)
        logger.info(
            "Money transferred",
            extra={
                "transaction_id": transaction.transaction_id,
                "from_user_id": from_user_id,
                "to_user_id": to_user_id,
                "amount": amount,
            },
        )
        return transaction

    def list_transactions(self, user_id: str) -> list[Transaction]:
        """Transfers the user sent or received, newest first."""
        transactions = [
            Transaction.model_validate(found.document)
            for found in self._store.iter_prefix(TRANSACTION_PREFIX)
            if user_id in (found.document.get("from_user_id"), found.document.get("to_user_id"))
        ]
        transactions.sort(key=lambda t: t.created_at, reverse=True)
        return transactions

    def record_roulette_spin(self, user_id: str, now: datetime | None = None) -> UserProfile:
        """Stamp the time of the user's last roulette spin."""
        now = now or utcnow()

        def mutate(document: dict[str, Any]) -> dict[str, Any]:
            document["last_roulette_spin"] = now.isoformat()
            return document

        updated = self._store.update(user_key(user_id), mutate, "Profile")
        return UserProfile.model_validate(updated.document)
