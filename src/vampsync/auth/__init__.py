"""Session precondition for the sync channel.

Login and user management live in the host application. Here we only
mint and verify the session token the client presents to /ws and to the
mutation hooks.
"""
