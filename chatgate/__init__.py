"""Chat gateway: quota-gated LLM relay with PayPal subscription reconciliation."""

__version__ = "0.1.0"
