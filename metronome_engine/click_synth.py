"""
Click tone synthesis for the metronome.
Short decaying sine bursts, higher pitched on accented beats.
"""

from functools import lru_cache
import logging

import numpy as np
from scipy.signal import windows

from .beat_types import ACCENT_FREQUENCY_HZ, BEAT_FREQUENCY_HZ

logger = logging.getLogger(__name__)

# Decay time constant as a fraction of the click duration
DECAY_FRACTION = 0.25
# Tukey taper: fraction of the click spent fading in + out
TAPER_ALPHA = 0.1


@lru_cache(maxsize=64)
def render_click(accent: bool, duration_seconds: float, amplitude: float,
                 sample_rate: int = 44100) -> np.ndarray:
    """
    Render one metronome click as mono float32 samples.

    The result is cached and marked read-only; copy it before mixing in place.

    Args:
        accent: Accent click (ACCENT_FREQUENCY_HZ) or regular click (BEAT_FREQUENCY_HZ)
        duration_seconds: Length of the click
        amplitude: Peak amplitude in [0, 1]
        sample_rate: Output sample rate

    Returns:
        1-D float32 array, starting and ending at zero, |x| <= amplitude
    """
    num_frames = max(1, int(round(duration_seconds * sample_rate)))

    if amplitude <= 0.0:
        click = np.zeros(num_frames, dtype=np.float32)
    else:
        frequency = ACCENT_FREQUENCY_HZ if accent else BEAT_FREQUENCY_HZ
        t = np.arange(num_frames) / float(sample_rate)
        tone = np.sin(2.0 * np.pi * frequency * t)
        decay = np.exp(-t / (duration_seconds * DECAY_FRACTION))
        taper = windows.tukey(num_frames, alpha=TAPER_ALPHA)
        click = (amplitude * tone * decay * taper).astype(np.float32)

    click.setflags(write=False)
    logger.debug(f"Rendered {'accent' if accent else 'beat'} click: {num_frames} frames, amp={amplitude:.2f}")
    return click


def mix_into(buffer: np.ndarray, samples: np.ndarray, start_frame: int) -> int:
    """
    Add samples into buffer starting at start_frame, clipping at both ends.

    Returns:
        Number of frames actually mixed
    """
    if start_frame >= len(buffer):
        return 0
    src_offset = max(0, -start_frame)
    dst_start = max(0, start_frame)
    count = min(len(samples) - src_offset, len(buffer) - dst_start)
    if count <= 0:
        return 0
    buffer[dst_start:dst_start + count] += samples[src_offset:src_offset + count]
    return count
