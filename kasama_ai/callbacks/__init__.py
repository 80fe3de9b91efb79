from kasama_ai.callbacks.registry import CallbackRegistry, PendingCallback
from kasama_ai.callbacks.notifier import CallbackNotifier

__all__ = ["CallbackRegistry", "PendingCallback", "CallbackNotifier"]
