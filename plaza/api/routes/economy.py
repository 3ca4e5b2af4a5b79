"""Game economy routes: player stats, wallet and roulette."""

from typing import Any

from apiflask import APIBlueprint

from plaza.api.rate_limiting import rate_limit_writes
from plaza.api.schemas import AdjustStatsRequest, AmountRequest, TransferRequest
from plaza.api.utils import build_stats_response, build_transaction_response
from plaza.api.validation import validate_request
from plaza.auth.jwt_auth import require_auth
from plaza.db.models import db
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("economy", __name__, url_prefix="/api", tag="Economy")


# ============================================================================
# Player Stats
# ============================================================================


@api.route("/stats", methods=["GET"])
@api.doc(responses=[401])
@require_auth
def get_stats(user_id: str) -> dict[str, Any]:
    """The caller's player stats. Defaults are created on first read."""
    return {"stats": build_stats_response(db.get_player_stats(user_id))}


@api.route("/stats/adjust", methods=["POST"])
@api.doc(responses=[400, 401, 409, 429])
@rate_limit_writes
@require_auth
@validate_request(AdjustStatsRequest)
def adjust_stats(user_id: str, data: AdjustStatsRequest) -> dict[str, Any]:
    """Apply stat deltas. Each stat stays within 0-100."""
    stats = db.adjust_player_stats(user_id, data.changes)
    return {"stats": build_stats_response(stats)}


# ============================================================================
# Wallet
# ============================================================================


@api.route("/wallet", methods=["GET"])
@api.doc(responses=[401, 404])
@require_auth
def get_wallet(user_id: str) -> dict[str, Any]:
    """The caller's balance and transfer history."""
    return {
        "balance": db.get_balance(user_id),
        "transactions": [build_transaction_response(t) for t in db.list_transactions(user_id)],
    }


@api.route("/wallet/deposit", methods=["POST"])
@api.doc(responses=[400, 401, 404, 409, 429])
@rate_limit_writes
@require_auth
@validate_request(AmountRequest)
def deposit(user_id: str, data: AmountRequest) -> dict[str, int]:
    """Add money to the caller's wallet."""
    return {"balance": db.add_money(user_id, data.amount)}


@api.route("/wallet/transfer", methods=["POST"])
@api.doc(responses=[400, 401, 404, 409, 429])
@rate_limit_writes
@require_auth
@validate_request(TransferRequest)
def transfer(user_id: str, data: TransferRequest) -> dict[str, Any]:
    """Send money to another user.

    409 means the caller's balance does not cover the amount.
    """
    transaction = db.transfer_money(user_id, data.to_user_id, data.amount)
    return {
        "transaction": build_transaction_response(transaction),
        "balance": db.get_balance(user_id),
    }


@api.route("/roulette/spin", methods=["POST"])
@api.doc(responses=[401, 404, 429])
@rate_limit_writes
@require_auth
def spin_roulette(user_id: str) -> dict[str, Any]:
    """Record a roulette spin for the caller."""
    profile = db.record_roulette_spin(user_id)
    spun_at = profile.last_roulette_spin
    return {"last_roulette_spin": spun_at.isoformat() if spun_at else None}
