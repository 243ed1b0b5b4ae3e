"""
Conversational front-end for browsing the AtlasApprox cell atlas.
"""
from __future__ import annotations

from cellatlas_chatbot.config import APP_NAME, APP_VERSION

__all__ = ["APP_NAME", "APP_VERSION"]
__version__ = APP_VERSION
