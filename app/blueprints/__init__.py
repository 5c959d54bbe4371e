"""
Blueprint helpers shared by the API modules.
"""

from flask import request

from app.services.registry import get_services
from app.services.side_effects import dispatch_effects


def run_effects(result: dict) -> dict:
    """Dispatch the post-commit effects of a service result, in place.

    The ``effects`` list is replaced by the delivery summaries under
    ``notifications`` so the client can see what was sent.
    """
    effects = result.pop("effects", None) or []
    if effects:
        result["notifications"] = dispatch_effects(effects, get_services().webhooks)
    return result


def bool_arg(name: str, default: bool = False) -> bool:
    """Read a truthy query parameter (1/true/yes)."""
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")
