from kasama_ai.webhooks.receiver import WebhookReceiver
from kasama_ai.webhooks.signatures import sign, verify_signature

__all__ = ["WebhookReceiver", "sign", "verify_signature"]
