"""
trello-autopilot: triage Trello bug cards and delegate fixes to a coding agent.
"""

from trello_autopilot.identity import __codename__, __tagline__, __version__

__all__ = ["__codename__", "__tagline__", "__version__"]
