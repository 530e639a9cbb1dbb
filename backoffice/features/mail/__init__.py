"""Outbound mail: message templates, transports and the background outbox."""
