"""Chat command groups. Each exposes ``commands()`` for the registry."""

from .first import FirstCommands
from .questions import QuestionCommands

__all__ = ["FirstCommands", "QuestionCommands"]
