# security.py - the wholesale gate
# the client sends the plaintext wholesale password with every request,
# nothing about the unlocked state is kept on the server

from functools import wraps

from flask import abort, current_app, g, request

import storage

WHOLESALE_HEADER = 'X-Wholesale-Password'

_warned_unguarded = False


class WholesaleAccess:
    """What the current request is allowed to do in wholesale mode."""

    def __init__(self, configured, unlocked):
        self.configured = configured
        self.unlocked = unlocked

    @property
    def can_write(self):
        # no password configured means writes are open
        return self.unlocked or not self.configured

    def __repr__(self):
        return f'<WholesaleAccess configured={self.configured} unlocked={self.unlocked}>'


def resolve_wholesale_access(password):
    settings = storage.get_settings()
    if settings is None or not settings.has_password:
        return WholesaleAccess(configured=False, unlocked=False)
    return WholesaleAccess(configured=True, unlocked=settings.check_password(password))


def current_access():
    if 'wholesale' not in g:
        g.wholesale = resolve_wholesale_access(request.headers.get(WHOLESALE_HEADER, ''))
    return g.wholesale


def wholesale_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        global _warned_unguarded
        access = current_access()
        if not access.can_write:
            abort(403, 'Wholesale access required')
        if not access.configured and not _warned_unguarded:
            current_app.logger.warning('no wholesale password set, write endpoints are unguarded')
            _warned_unguarded = True
        return view(*args, **kwargs)
    return wrapped
