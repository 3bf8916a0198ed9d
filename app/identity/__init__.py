"""
Identity application.

Owns the custom user model and the directory/presence operations the chat
core consumes through the IdentityProvider protocol.
"""
