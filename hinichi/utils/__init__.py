"""Utility modules for hinichi."""

from .logging_config import log_operation, setup_logging

__all__ = ['log_operation', 'setup_logging']
