"""Blocking DNS transports used for forwarding, health probes and transfers."""
