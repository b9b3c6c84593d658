"""Utility classes shared by the pipeline stages"""

from .progress import ProgressMonitor

__all__ = ['ProgressMonitor']
