"""
Tests for the console front-end (argument handling only, no playback).
"""

from breath_pacer.cli import build_parser, main


class TestParser:

    def test_run_defaults(self):
        args = build_parser().parse_args(['run'])
        assert args.pattern == '4-7-8'
        assert args.minutes == 5.0
        assert args.cycles == 0
        assert args.sound == 'beep'
        assert args.ambient is None
        assert args.tick == 0.1

    def test_resonance_options(self):
        args = build_parser().parse_args(['resonance', '--minutes', '1', '--rate',
                                          '--backend', 'dummy'])
        assert args.minutes == 1.0
        assert args.rate
        assert args.backend == 'dummy'


def test_patterns_lists_built_ins(capsys):
    assert main(['patterns']) == 0
    out = capsys.readouterr().out
    assert '4-7-8 Relaxing' in out
    assert '6-0-6-0' in out


def test_unknown_pattern_is_an_error(capsys):
    assert main(['run', '--pattern', 'nope', '--backend', 'dummy']) == 2
    assert 'nope' in capsys.readouterr().err
