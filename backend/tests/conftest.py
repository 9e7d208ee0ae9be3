"""Shared pytest setup: import path and an isolated environment."""

import os
import sys
import tempfile

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Settings are read once at import time, so pin them before any test module
# imports convoform.
os.environ.setdefault("VISUALS_DIR", tempfile.mkdtemp(prefix="convoform-visuals-"))
os.environ.setdefault("VISUALS_BASE_URL", "http://test/visuals")
os.environ.setdefault("PUBLIC_ORIGIN", "http://preview.test")
os.environ.setdefault("AUTOSAVE_DELAY_SECONDS", "0.01")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("AZURE_OPENAI_ENDPOINT", None)
os.environ.pop("AZURE_OPENAI_KEY", None)
