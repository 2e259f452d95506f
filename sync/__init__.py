"""Sync module: retry policy and the per-contract sync coordinator"""
from .retry import RetryPolicy
from .coordinator import SyncCoordinator, SyncError

__all__ = ['RetryPolicy', 'SyncCoordinator', 'SyncError']
