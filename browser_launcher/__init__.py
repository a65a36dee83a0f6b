"""
Browser Launcher - discover locally installed browsers and launch them.

Keeps a browsers.json registry per config directory healthy and serializes
access to the discovery facility so concurrent callers cannot corrupt it.
"""

__version__ = "0.1.0"
__author__ = "Browser Launcher Contributors"
