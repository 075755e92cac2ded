"""
Per-blueprint request limits (Flask-Limiter, keyed on remote address).

The Limiter is built in ``vsaq/__init__.py`` without default limits; this
module attaches one limit per route family and exempts the health probes.
Nothing is applied under TESTING.
"""

# Autosave fires once per field edit; a long form filled quickly stays well under this.
FILL_LIMIT = "300/minute"
ADMIN_LIMIT = "120/minute"
AUTH_LIMIT = "30/minute"

BLUEPRINT_LIMITS = {
    "fill": FILL_LIMIT,
    "templates": ADMIN_LIMIT,
    "instances": ADMIN_LIMIT,
    "auth_bp": AUTH_LIMIT,
}
EXEMPT_BLUEPRINTS = ("health_bp",)


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    applied = {}
    for name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.limit(limit)(bp)
            applied[name] = limit

    for name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.exempt(bp)

    app.logger.info("Rate limits applied: %s", ", ".join(f"{k}={v}" for k, v in applied.items()))
