# -*- coding: utf-8 -*-
"""
Tests for the console and structured debug loggers.

Run with:
    pytest tests/test_loggers.py -v
"""

import io
import json
import logging

import pytest

from fluxforest.errors import InsufficientData
from fluxforest.loggers import (
    ConsoleLogger,
    DebugLogger,
    LogContext,
    log_context,
    log_execution,
    setup_logging,
)


class TestConsoleLogger:

    def test_phase_success(self):
        stream = io.StringIO()
        console = ConsoleLogger(use_color=False, stream=stream)
        with console.phase('Partition', number=2) as ph:
            ph.detail('767 training rows')
        text = stream.getvalue()
        assert '[2/7] Partition' in text
        assert 'OK' in text
        assert '\033[' not in text
        assert console.phases[0].status == 'completed'

    def test_phase_failure_reraises(self):
        console = ConsoleLogger(use_color=False, stream=io.StringIO())
        with pytest.raises(RuntimeError):
            with console.phase('Forest'):
                raise RuntimeError('boom')
        assert console.phases[0].status == 'failed'
        assert 'phase' not in LogContext.get()

    def test_table(self):
        stream = io.StringIO()
        console = ConsoleLogger(use_color=False, stream=stream)
        console.table(['Driver', 'Importance'], [['moist7', '1.25']])
        lines = stream.getvalue().splitlines()
        assert len(lines) == 3
        assert 'moist7' in lines[2]


class TestDebugLogger:

    def test_captures_module_loggers(self, tmp_path):
        debug = DebugLogger(output_dir=str(tmp_path))
        with log_context(phase='Forest'):
            logging.getLogger('fluxforest.forest').info('grown %d trees', 5)
        debug.log_data('sizes', {'training': 767})
        path = debug.close()
        with open(path, encoding='utf-8') as f:
            entries = json.load(f)
        messages = [e['message'] for e in entries]
        assert 'grown 5 trees' in messages
        assert entries[0]['phase'] == 'Forest'
        assert entries[1]['data'] == {'training': 767}

    def test_close_detaches(self, tmp_path):
        debug = DebugLogger(output_dir=str(tmp_path))
        debug.close()
        logging.getLogger('fluxforest.forest').info('after close')
        assert debug.entry_count == 0

    def test_exception_keeps_traceback(self, tmp_path):
        debug = DebugLogger(output_dir=str(tmp_path))
        try:
            raise InsufficientData('too few rows', stage='importance')
        except InsufficientData as e:
            debug.exception('importance failed', e, module='fluxforest.pipeline')
        debug.close()
        entry = debug.entries[-1]
        assert entry['level'] == 'ERROR'
        assert entry['module'] == 'fluxforest.pipeline'
        assert 'InsufficientData' in ''.join(entry['data']['traceback'])

    def test_log_execution(self, tmp_path):
        debug = DebugLogger(output_dir=str(tmp_path))

        @log_execution(logging.getLogger('fluxforest.test'))
        def work():
            return 3

        assert work() == 3
        debug.close()
        assert any('completed' in e['message'] for e in debug.entries)


def test_setup_logging(tmp_path):
    console, debug = setup_logging(str(tmp_path), use_color=False)
    assert isinstance(console, ConsoleLogger)
    assert debug.path.startswith(str(tmp_path / 'logs'))
    debug.close()
