"""
Console front-end.

Examples:
    breath-pacer patterns
    breath-pacer run --pattern 4-4-4-4 --minutes 3 --ambient ocean
    breath-pacer resonance --minutes 1 --rate
"""

import argparse
import logging
import queue
import sys
import threading

from .audio.manager import AudioManager
from .core.errors import BreathPacerError
from .core.logging_config import quiet_audio_logging, set_logging_level, setup_logging
from .core.patterns import PatternCatalog
from .core.resonance import (
    DEFAULT_TEST_MINUTES, MAX_RATING, MIN_RATING,
    RESONANCE_TEST_FREQUENCIES, ResonanceStage, ResonanceTestController,
)
from .core.scheduler import ThreadingTickScheduler
from .core.session import DEFAULT_TICK_SECONDS, BreathingSession, SessionEvent
from .core.settings import BackgroundMusicType, InMemorySettingsStore, SoundType

BACKEND_CHOICES = ['pyaudio', 'sounddevice', 'dummy']


def _format_clock(seconds: float) -> str:
    seconds = int(round(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def _print_session_event(event: SessionEvent, state):
    if event == SessionEvent.PHASE_CHANGED:
        remaining = (f"  {_format_clock(state.total_seconds_remaining)} left"
                     if state.total_seconds_remaining > 0 else "")
        print(f"  {state.phase.label:<20} {state.seconds_remaining:5.1f}s"
              f"   cycle {state.current_cycle}{remaining}")
    elif event == SessionEvent.PAUSED:
        print("  ⏸ paused")
    elif event == SessionEvent.TIME_LIMIT_REACHED:
        print("  ⏱ time is up")


def _build_session(store, args) -> BreathingSession:
    audio = AudioManager(backend_type=args.backend)
    session = BreathingSession(store, audio=audio, scheduler=ThreadingTickScheduler(),
                               tick_seconds=args.tick)
    session.add_observer(_print_session_event)
    return session


def _close_session(session: BreathingSession):
    session.shutdown()
    session.audio.close()


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def cmd_patterns(args) -> int:
    catalog = PatternCatalog(InMemorySettingsStore())
    for pattern in catalog.patterns():
        print(f"  {pattern.id:<10} {pattern.name:<20} {pattern.breaths_per_minute:4.1f} breaths/min")
    return 0


def cmd_run(args) -> int:
    store = InMemorySettingsStore()
    PatternCatalog(store).apply(args.pattern)
    store.write(
        total_minutes=args.minutes,
        total_cycles=args.cycles,
        sound_enabled=not args.silent,
        sound_type=args.sound,
        sound_volume=args.volume,
        cycle_chime_enabled=args.chime,
        background_music_enabled=args.ambient is not None,
        background_music_type=args.ambient or BackgroundMusicType.OCEAN.value,
        background_music_volume=args.ambient_volume,
        custom_music_source=args.custom_audio,
    )

    session = _build_session(store, args)
    done = threading.Event()

    def on_event(event, state):
        if event in (SessionEvent.COMPLETED, SessionEvent.RESET):
            done.set()

    session.add_observer(on_event)
    print(f"▶ {args.pattern} - press Ctrl+C to stop")
    try:
        session.start()
        while not done.wait(0.5):
            pass
        print("✓ Session complete")
    except KeyboardInterrupt:
        print("\n⏹ Stopped")
    finally:
        _close_session(session)
    return 0


def cmd_resonance(args) -> int:
    store = InMemorySettingsStore()
    store.write(sound_type=args.sound)
    session = _build_session(store, args)
    controller = ResonanceTestController(session)
    updates = queue.Queue()
    controller.add_observer(updates.put)

    total = args.minutes * len(RESONANCE_TEST_FREQUENCIES)
    print(f"▶ Resonance test: {len(RESONANCE_TEST_FREQUENCIES)} rates x "
          f"{args.minutes:g} min ({total:g} min) - press Ctrl+C to cancel")
    announced = -1
    try:
        controller.start(duration_minutes=args.minutes, skip_rating=not args.rate)
        while True:
            try:
                state = updates.get(timeout=0.5)
            except queue.Empty:
                continue
            if state.stage == ResonanceStage.TESTING and state.current_frequency_index != announced:
                announced = state.current_frequency_index
                print(f"\n{state.current_frequency.breaths_per_minute:g} breaths/min "
                      f"({state.current_frequency_index + 1}/{len(RESONANCE_TEST_FREQUENCIES)})")
            elif state.stage == ResonanceStage.RATING and not state.skip_rating \
                    and state.ratings[state.current_frequency_index] is None:
                controller.rate(_ask_rating())
                controller.next()
            elif state.stage == ResonanceStage.COMPLETED:
                _print_resonance_result(state)
                break
    except KeyboardInterrupt:
        controller.cancel()
        print("\n⏹ Resonance test cancelled")
    finally:
        controller.close()
        _close_session(session)
    return 0


def _ask_rating() -> int:
    while True:
        answer = input(f"  Comfort rating {MIN_RATING}-{MAX_RATING}: ").strip()
        if answer.isdigit() and MIN_RATING <= int(answer) <= MAX_RATING:
            return int(answer)
        print(f"  Please enter a whole number from {MIN_RATING} to {MAX_RATING}")


def _print_resonance_result(state):
    frequency = state.resonant_frequency
    if frequency is None:
        print("\n✓ Test complete - no rates were rated, no resonance frequency found")
        return
    print(f"\n✓ Resonance frequency: {frequency.breaths_per_minute:g} breaths/min "
          f"(inhale {frequency.inhale_seconds:g}s, exhale {frequency.exhale_seconds:g}s)")


# ══════════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ══════════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='breath-pacer',
        description='Guided breathing sessions with audio cues',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  breath-pacer patterns
  breath-pacer run --pattern 4-4-4-4 --minutes 3 --ambient ocean
  breath-pacer run --cycles 10 --sound noise --backend dummy
  breath-pacer -v --quiet-audio --log-file session.log run --ambient rain
  breath-pacer resonance --minutes 1 --rate
        """
    )
    parser.add_argument('--debug', action='store_true', help='Debug logging (every transition and cue)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log session and test progress')
    parser.add_argument('--quiet-audio', action='store_true',
                        help='Only warnings from the audio layer')
    parser.add_argument('--log-file', default=None, help='Also write the full log to this file')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('patterns', help='List breathing patterns')

    audio_args = argparse.ArgumentParser(add_help=False)
    audio_args.add_argument(
        '--sound',
        choices=[t.value for t in SoundType],
        default=SoundType.BEEP.value,
        help='Cue style (default: beep)'
    )
    audio_args.add_argument(
        '--backend',
        choices=BACKEND_CHOICES,
        default=None,
        help='Audio backend (default: auto-detect)'
    )
    audio_args.add_argument(
        '--tick',
        type=float,
        default=DEFAULT_TICK_SECONDS,
        help=f'Tick length in seconds (default: {DEFAULT_TICK_SECONDS})'
    )

    run = sub.add_parser('run', parents=[audio_args], help='Run a breathing session')
    run.add_argument('--pattern', '-p', default='4-7-8', help='Pattern id (default: 4-7-8)')
    run.add_argument('--minutes', '-m', type=float, default=5.0,
                     help='Session length in minutes, 0 = unlimited (default: 5)')
    run.add_argument('--cycles', '-c', type=int, default=0,
                     help='Stop after this many cycles, 0 = no cycle limit')
    run.add_argument('--volume', type=float, default=50.0, help='Cue volume 0-100')
    run.add_argument('--silent', action='store_true', help='No phase cues')
    run.add_argument('--chime', action='store_true', help='Chime at each completed cycle')
    run.add_argument(
        '--ambient',
        choices=[t.value for t in BackgroundMusicType],
        default=None,
        help='Ambient background (default: none)'
    )
    run.add_argument('--ambient-volume', type=float, default=50.0,
                     help='Ambient volume 0-100')
    run.add_argument('--custom-audio', default=None,
                     help='WAV file played when --ambient custom')

    res = sub.add_parser('resonance', parents=[audio_args], help='Run the resonance frequency test')
    res.add_argument('--minutes', '-m', type=float, default=DEFAULT_TEST_MINUTES,
                     help=f'Minutes per rate, 0.5-10 in 0.5 steps (default: {DEFAULT_TEST_MINUTES:g})')
    res.add_argument('--rate', action='store_true',
                     help='Ask for a comfort rating after each rate')
    return parser


COMMANDS = {
    'patterns': cmd_patterns,
    'run': cmd_run,
    'resonance': cmd_resonance,
}


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(debug=args.debug, log_file=args.log_file)
    if not (args.debug or args.verbose):
        set_logging_level(logging.WARNING)
    if args.quiet_audio:
        quiet_audio_logging()

    try:
        return COMMANDS[args.command](args)
    except BreathPacerError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
