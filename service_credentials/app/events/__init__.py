"""
Change events package.
"""

from .notifier import ChangeEvent, ChangeKind, ChangeNotifier, Observer

__all__ = ["ChangeEvent", "ChangeKind", "ChangeNotifier", "Observer"]
