"""
Rate limiting configuration.

Applies per-route-category limits using Flask-Limiter.  The Limiter
instance is created in ``labflow/__init__.py`` with no default limits;
this module applies granular limits after blueprints are registered.

E-signature endpoints get the strictest limit: each call is a password
check, so the limit bounds online guessing.

Usage:
    from labflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# View functions that verify an e-signature password
ESIGN_ENDPOINTS = (
    "reports.change_status",
    "reports.override_status",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits.

    Limits (per remote IP):
        - E-sign routes:   ESIGN_RATE_LIMIT (default 10/minute)
        - Report / template / audit blueprints: 120/minute
        - Health check:    exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    esign_limit = app.config.get("ESIGN_RATE_LIMIT", "10/minute")
    for endpoint in ESIGN_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(esign_limit)(view)

    for bp_name in ("reports", "templates", "audit"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("120/minute")(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — e-sign: %s, api: 120/min", esign_limit)
