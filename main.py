# pronia-metronome/main.py

import argparse
import time
import sys
import os
import logging
import queue
import threading

PROJECT_ROOT_DIR = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT_DIR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_DIR)

import config as app_config
from metronome_engine import (
    AudioUnavailableError,
    InvalidTempoConfigError,
    Metronome,
    TempoConfig,
    render_click_track,
)
from metronome_engine.offline_clock import write_wav

logger = logging.getLogger(__name__)

TEMPO_NUDGE_BPM = 5.0

COMMAND_HELP = """Commands:
  bpm <n>   set tempo            + / -   nudge tempo by 5 BPM
  sig <n>   beats per measure    vol <x> volume 0..1
  t         start/stop           q       quit"""


def setup_logging(log_level_str='INFO'):
    """Set up logging with specified level"""
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(description="Pronia Metronome - drift-free practice metronome")
    parser.add_argument("--bpm", type=float, default=app_config.DEFAULT_BPM,
                        help=f"Tempo in beats per minute (default: {app_config.DEFAULT_BPM:g})")
    parser.add_argument("--beats-per-measure", type=int, default=app_config.DEFAULT_BEATS_PER_MEASURE,
                        help=f"Beats per measure, commonly {', '.join(map(str, app_config.COMMON_BEATS_PER_MEASURE))} "
                             f"(default: {app_config.DEFAULT_BEATS_PER_MEASURE})")
    parser.add_argument("--volume", type=float, default=app_config.DEFAULT_VOLUME,
                        help=f"Click volume 0..1 (default: {app_config.DEFAULT_VOLUME})")
    parser.add_argument("--no-accent", action='store_true',
                        help="Do not accent the first beat of each measure")
    parser.add_argument("--duration", type=float, default=0.0,
                        help="Seconds to play (or render) before stopping. 0 plays until 'q' or Ctrl+C.")
    parser.add_argument("--render", nargs='?', const='', default=None, metavar="WAV_PATH",
                        help="Render a click track to a WAV file instead of playing it "
                             "(default path under the renders/ directory)")
    parser.add_argument("--log-level",
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO',
                        help='Set logging level (default: INFO)')
    parser.add_argument("--verbose", "-v", action='store_true',
                        help='Enable verbose debug logging (same as --log-level DEBUG)')
    parser.add_argument("--quiet", "-q", action='store_true',
                        help='Only show errors and warnings (same as --log-level WARNING)')
    return parser


def apply_command(metronome, line):
    """
    Apply one interactive command to the metronome.

    Returns:
        False when the user asked to quit, True otherwise
    """
    parts = line.strip().split()
    if not parts:
        return True
    command, args = parts[0].lower(), parts[1:]

    try:
        if command in ('q', 'quit', 'exit'):
            return False
        elif command in ('t', 'toggle'):
            metronome.toggle()
        elif command == '+':
            metronome.update_tempo(metronome.tempo_config.beats_per_minute + TEMPO_NUDGE_BPM)
        elif command == '-':
            metronome.update_tempo(metronome.tempo_config.beats_per_minute - TEMPO_NUDGE_BPM)
        elif command == 'bpm' and len(args) == 1:
            metronome.update_tempo(float(args[0]))
        elif command == 'sig' and len(args) == 1:
            metronome.update_time_signature(int(args[0]))
        elif command == 'vol' and len(args) == 1:
            metronome.update_volume(float(args[0]))
        else:
            logger.warning(f"Unknown command: {line.strip()!r}")
            logger.info(COMMAND_HELP)
            return True
    except InvalidTempoConfigError as e:
        logger.warning(f"Rejected: {e}")
    except ValueError as e:
        logger.warning(f"Could not parse {line.strip()!r}: {e}")
    else:
        cfg = metronome.tempo_config
        logger.info(f"{'Playing' if metronome.running else 'Stopped'}: {cfg.beats_per_minute:g} BPM, "
                    f"{cfg.beats_per_measure} beats/measure, volume {cfg.volume:.2f}")
    return True


def _read_commands(command_queue):
    """stdin reader thread"""
    for line in sys.stdin:
        command_queue.put(line)
    command_queue.put('q')


def render_to_file(tempo_config, duration_seconds, wav_path):
    if duration_seconds <= 0:
        logger.error("--render needs a positive --duration")
        return 1
    if not wav_path:
        app_config.ensure_dir_exists(app_config.RENDERS_DIR)
        wav_path = app_config.get_render_filepath(tempo_config.beats_per_minute, tempo_config.beats_per_measure)

    buffer, events = render_click_track(tempo_config, duration_seconds, app_config)
    frames = write_wav(wav_path, buffer, app_config.SAMPLE_RATE)
    accents = sum(1 for e in events if e.is_accent)
    logger.info(f"Wrote {wav_path}: {frames} frames, {len(events)} clicks ({accents} accented)")
    return 0


def play_live(tempo_config, duration_seconds):
    metronome = Metronome(app_config_module=app_config, tempo_config=tempo_config)
    metronome.scheduler.add_beat_callback(
        lambda event: logger.debug(f"Beat {event.beat_in_measure + 1}{' (accent)' if event.is_accent else ''} "
                                   f"at {event.time:.3f}s")
    )

    command_queue = queue.Queue()
    if sys.stdin is not None and sys.stdin.isatty():
        threading.Thread(target=_read_commands, args=(command_queue,), daemon=True,
                         name="Metronome-Commands").start()
        logger.info(COMMAND_HELP)

    try:
        with metronome:
            metronome.start()
            start_time = time.time()
            loop_count = 0
            while True:
                loop_count += 1
                try:
                    line = command_queue.get(timeout=0.1)
                    if not apply_command(metronome, line):
                        break
                except queue.Empty:
                    pass

                if loop_count % 50 == 0:
                    stats = metronome.scheduler.get_stats()
                    logger.info(f"Status: {'running' if metronome.running else 'stopped'} | "
                                f"beat {metronome.current_beat_in_measure + 1}/{metronome.tempo_config.beats_per_measure} | "
                                f"scheduled={stats['events_scheduled']} late={stats['late_events']}")

                if duration_seconds > 0 and (time.time() - start_time) >= duration_seconds:
                    logger.info(f"Duration of {duration_seconds:g}s reached.")
                    break
    except AudioUnavailableError as e:
        logger.error(f"No audio output available: {e}")
        logger.error("Use --render to write a click track to a WAV file instead.")
        return 1
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received. Shutting down...")

    logger.info(f"Final scheduler stats: {metronome.scheduler.get_stats()}")
    return 0


def run_metronome(argv=None):
    args = build_parser().parse_args(argv)

    # Determine log level based on arguments
    if args.quiet:
        log_level = 'WARNING'
    elif args.verbose:
        log_level = 'DEBUG'
    else:
        log_level = args.log_level
    setup_logging(log_level)

    try:
        tempo_config = TempoConfig(
            beats_per_minute=args.bpm,
            beats_per_measure=args.beats_per_measure,
            accent_first_beat=not args.no_accent,
            volume=args.volume,
        )
    except InvalidTempoConfigError as e:
        logger.error(f"Invalid settings: {e}")
        return 2

    if args.render is not None:
        return render_to_file(tempo_config, args.duration, args.render)
    return play_live(tempo_config, args.duration)


if __name__ == "__main__":
    sys.exit(run_metronome())
