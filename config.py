# pronia-metronome/config.py

import os
import logging
logger = logging.getLogger(__name__)

# --- Project Root Directory ---
# This assumes config.py is in the project's root directory
PROJECT_ROOT_DIR = os.path.dirname(os.path.abspath(__file__))

# --- Core Directory Names (relative to project root) ---
RENDERS_DIR_NAME = "renders" # Offline click tracks written by --render

# --- Full Absolute Paths (derived from above) ---
RENDERS_DIR = os.path.join(PROJECT_ROOT_DIR, RENDERS_DIR_NAME)

# --- Scheduler Timing ---
# Lookahead window: beats starting before now + LOOKAHEAD_SECONDS are enqueued.
# Must exceed worst-case poll timer jitter; smaller values make tempo changes feel faster.
LOOKAHEAD_SECONDS = 0.1
# Delay between scheduling passes. Independent of tempo.
POLL_INTERVAL_MS = 25.0

# --- Tempo Defaults (bounds are enforced in metronome_engine.beat_types) ---
DEFAULT_BPM = 120.0
DEFAULT_BEATS_PER_MEASURE = 4
DEFAULT_VOLUME = 0.8
COMMON_BEATS_PER_MEASURE = (2, 3, 4, 6)

# --- Audio Output ---
SAMPLE_RATE = 44100
OUTPUT_BLOCKSIZE = 256 # ~5.8 ms at 44.1 kHz, well under the lookahead window
CLICK_DURATION_SECONDS = 0.05

# --- Helper Function to Ensure Directory Existence ---
def ensure_dir_exists(dir_path):
    """Checks if a directory exists, and creates it if it doesn't."""
    if not os.path.exists(dir_path):
        try:
            os.makedirs(dir_path, exist_ok=True)
            logger.info(f"CONFIG: Created directory: {dir_path}")
        except OSError as e:
            logger.error(f"CONFIG - Could not create directory {dir_path}: {e}")

def get_render_filepath(beats_per_minute, beats_per_measure):
    """Default output path for an offline click track"""
    return os.path.join(RENDERS_DIR, f"click_{beats_per_minute:.1f}bpm_{beats_per_measure}.wav")

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    logger.info(f"Project Root Directory: {PROJECT_ROOT_DIR}")
    logger.info(f"Renders Directory: {RENDERS_DIR}")
    logger.info(f"Lookahead: {LOOKAHEAD_SECONDS}s, poll interval: {POLL_INTERVAL_MS}ms")
