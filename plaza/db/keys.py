"""Key namespace for the document store.

The entity kind is the first colon-delimited segment of a key. Kinds whose
documents are listed in time order (messages, notifications) embed a sortable
timestamp in their id so that key order approximates creation order.

Key formats:
- Profiles: "user:{user_id}"
- Posts: "post:{post_id}"
- Follow edges: "follow:{follower_id}:{followee_id}"
- Notifications: "notification:{recipient_id}:{notification_id}"
- Chats: "chat:{chat_id}"
- Messages: "message:{chat_id}:{message_id}"
- Invites: "invite:{invite_id}"
- Player stats: "stats:{user_id}"
- Wallet transfers: "transaction:{transaction_id}"
- Username claims: "username:{casefolded username}"

Ids never contain the ":" separator; the builders reject ones that do.
"""

import uuid
from datetime import datetime

from plaza.exceptions import ValidationError

KEY_SEPARATOR = ":"

# Compact, lexicographically sortable and free of colons
TIME_ID_FORMAT = "%Y%m%dT%H%M%S%fZ"


def kind_of(key: str) -> str:
    """Return the entity kind encoded in a key."""
    return key.split(KEY_SEPARATOR, 1)[0]


def new_id() -> str:
    return str(uuid.uuid4())


def new_time_ordered_id(now: datetime) -> str:
    """Create an id that sorts by creation time, with a uuid tie-breaker."""
    return f"{now.strftime(TIME_ID_FORMAT)}-{uuid.uuid4().hex[:12]}"


def check_id(value: str) -> str:
    """Return ``value`` if it can be used as one key segment.

    A separator inside an id would let "follow:a:b:c" belong to both
    ("a:b", "c") and ("a", "b:c"), and make "notification:a:" scan the inbox
    of user "a:b".

    Raises:
        ValidationError: If the id is empty or contains the separator
    """
    if not value or KEY_SEPARATOR in value:
        raise ValidationError("Invalid identifier", {"id": value})
    return value


def user_key(user_id: str) -> str:
    return f"user:{check_id(user_id)}"


def post_key(post_id: str) -> str:
    return f"post:{check_id(post_id)}"


def follow_key(follower_id: str, followee_id: str) -> str:
    return f"follow:{check_id(follower_id)}:{check_id(followee_id)}"


def notification_key(recipient_id: str, notification_id: str) -> str:
    return f"notification:{check_id(recipient_id)}:{check_id(notification_id)}"


def notification_prefix(recipient_id: str) -> str:
    return f"notification:{check_id(recipient_id)}:"


def chat_key(chat_id: str) -> str:
    return f"chat:{check_id(chat_id)}"


def message_key(chat_id: str, message_id: str) -> str:
    return f"message:{check_id(chat_id)}:{check_id(message_id)}"


def message_prefix(chat_id: str) -> str:
    return f"message:{check_id(chat_id)}:"


def invite_key(invite_id: str) -> str:
    return f"invite:{check_id(invite_id)}"


def stats_key(user_id: str) -> str:
    return f"stats:{check_id(user_id)}"


def transaction_key(transaction_id: str) -> str:
    return f"transaction:{check_id(transaction_id)}"


# Prefixes for whole-kind scans
USER_PREFIX = "user:"
POST_PREFIX = "post:"
FOLLOW_PREFIX = "follow:"
CHAT_PREFIX = "chat:"
MESSAGE_PREFIX = "message:"
INVITE_PREFIX = "invite:"
TRANSACTION_PREFIX = "transaction:"


def username_key(username: str) -> str:
    """Uniqueness claim for a username (case-insensitive)."""
    return f"username:{username.casefold()}"
