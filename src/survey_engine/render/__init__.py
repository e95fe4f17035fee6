"""Outbound message rendering.

Provides ``MessageRenderer``, a Jinja2-based template engine that turns
question definitions into the plain-text messages sent to users.
"""

from survey_engine.render.manager import MessageRenderer

__all__ = ["MessageRenderer"]
