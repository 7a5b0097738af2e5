"""Bridge shell-command driven switches and displays to MQTT."""

__version__ = "1.0.0"
