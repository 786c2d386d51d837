"""
Authentication application.

Email-based user accounts and JWT credential issuance for the gig board.
Chat depends on the user record for display name, avatar and presence
(is_online / last_seen), which only chat.services.PresenceService mutates.

Usage:
    from authentication.models import User
"""
