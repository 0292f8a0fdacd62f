"""KubeArmor host probing, probe result output and security policy recommendation."""

__version__ = "0.1.0"