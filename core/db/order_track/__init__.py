"""
Order tracking storage re-exports.
"""
from core.db.order_track.order_track_store import get_order_track, upsert_order_track

__all__ = ["get_order_track", "upsert_order_track"]
