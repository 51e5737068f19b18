"""Cadence: memory-model scheduling for practice questions."""

from cadence.consts import VERSION

__version__ = VERSION
