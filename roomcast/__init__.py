"""roomcast - ephemeral chat rooms with live event streaming"""

__version__ = "1.0.0"
