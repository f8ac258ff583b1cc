"""soulxbot - Twitch chat bot: stream sessions, first-chatter race and question of the day."""

__version__ = "1.0.0"
