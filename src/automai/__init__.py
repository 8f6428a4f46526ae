"""AutomAI gateway: SSRF-safe onboarding of tenant WhatsApp gateways."""

__version__ = "0.1.0"
