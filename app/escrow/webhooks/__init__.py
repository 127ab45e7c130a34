"""
Provider webhook intake.

Handlers are imported in EscrowConfig.ready() so the registry is populated
before the first event is dispatched.
"""
