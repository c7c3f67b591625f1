"""Shared test setup."""

import os
import tempfile

# Settings are read at import time; keep the global database out of the home directory
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="finscan-tests-"))
