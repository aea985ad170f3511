"""
WifiDesk — Hotel Guest WiFi Support Portal
Blueprint registry and shared helpers.
"""

from flask import request
from sqlalchemy import func, select

from wifidesk.models import db


def paginate_query(stmt, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy select().

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count, limit, offset)
    """
    total = db.session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 1)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = db.session.execute(stmt.limit(limit).offset(offset)).scalars().all()
    return list(items), total, limit, offset


def all_blueprints():
    """Blueprints registered by create_app(), in registration order."""
    from wifidesk.blueprints.escalation_bp import escalation_bp
    from wifidesk.blueprints.health_bp import health_bp
    from wifidesk.blueprints.request_bp import request_bp
    from wifidesk.blueprints.scheduler_bp import scheduler_bp

    return [request_bp, escalation_bp, scheduler_bp, health_bp]
