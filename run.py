#!/usr/bin/env python3
"""
Viral Shorts - Entry point script.
Run this from the project root to generate shorts.
"""
import sys
from pathlib import Path
import signal
import logging
import gc

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from shorts import main


def _cleanup():
    """Free the memory held by the Whisper model, if any."""
    try:
        import torch
        if torch.cuda.is_available():
            torch.cuda.empty_cache()
            logging.info("Emptied torch.cuda cache")
    except ImportError:
        pass
    gc.collect()


def _signal_handler(signum, frame):
    logging.info(f"Received signal {signum}, shutting down...")
    _cleanup()
    # Exit cleanly; clips already written are kept.
    sys.exit(130)


# Register signal handlers for graceful shutdown
signal.signal(signal.SIGINT, _signal_handler)
signal.signal(signal.SIGTERM, _signal_handler)

if __name__ == "__main__":
    try:
        sys.exit(main())
    finally:
        _cleanup()
