"""Filesystem locations used by ledgerline."""

import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("LEDGERLINE_DATA_DIR", Path.home() / ".ledgerline")).expanduser()
