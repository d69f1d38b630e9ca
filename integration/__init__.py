"""Miner orchestration: runner, periodic scheduler, dispatch worker pool and the
``eidos-miner`` command line (``python3 -m integration.cli``)."""
