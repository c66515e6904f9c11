# Overview: Flask API routes for the change feed; clients poll and merge rows by id.

from flask import Blueprint, request, g

from ..services import change_feed
from ..services.change_feed import ChangeFeedError
from ..decorators import require_auth


changes_bp = Blueprint("changes", __name__, url_prefix="/api/changes")


@changes_bp.get("")
@require_auth
def list_changes_route():
    """
    Change events after a cursor, oldest first.

    Query params:
    - since_id: last event id already seen (default 0)
    - table: products | customers | invoices | invoice_items | payments | business_settings
    - limit: max events (default and max 500)
    """
    try:
        return change_feed.list_changes(
            g.org_id,
            since_id=request.args.get("since_id", default=0, type=int),
            table=request.args.get("table"),
            limit=request.args.get("limit", type=int) or change_feed.MAX_FEED_PAGE,
        )
    except ChangeFeedError as exc:
        return {"error": str(exc)}, 400


@changes_bp.get("/<string:table>/snapshot")
@require_auth
def snapshot_route(table: str):
    """Current rows of one feed table, newest first."""
    try:
        rows = change_feed.snapshot(g.org_id, table)
    except ChangeFeedError as exc:
        return {"error": str(exc)}, 400
    return {"table": table, "items": rows, "count": len(rows)}
