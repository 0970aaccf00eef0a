"""
Single import point for the storage layer used by the web app and scripts.
"""
from core.db.base import get_conn, get_listen_conn, now_iso
from core.db.schema import CHANGES_CHANNEL, NOTIFY_TABLES, init_db
from core.db import deliveries, order_track, parts, parts_rules, quote_actions, quotes, users
from core.db.deliveries import *  # noqa: F401,F403
from core.db.order_track import *  # noqa: F401,F403
from core.db.parts import *  # noqa: F401,F403
from core.db.parts_rules import *  # noqa: F401,F403
from core.db.quote_actions import *  # noqa: F401,F403
from core.db.quotes import *  # noqa: F401,F403
from core.db.users import *  # noqa: F401,F403

__all__ = [
    "get_conn",
    "get_listen_conn",
    "now_iso",
    "init_db",
    "CHANGES_CHANNEL",
    "NOTIFY_TABLES",
    *users.__all__,
    *quotes.__all__,
    *parts.__all__,
    *parts_rules.__all__,
    *quote_actions.__all__,
    *deliveries.__all__,
    *order_track.__all__,
]
