"""Pytest configuration for parcel-plane tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports without an install.
_SRC = Path(__file__).parent.parent / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))
