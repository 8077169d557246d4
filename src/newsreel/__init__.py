#!/usr/bin/env python3
"""
newsreel - narrated news reel generator.

Fetches headlines, curates and narrates them with Gemini, and plays them as a timed
slideshow with mixed narration and background music; optionally records and
publishes the result.
"""

__version__ = "1.0.0"
