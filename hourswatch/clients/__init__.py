"""Clients for external services: the place directory and alert delivery."""
from hourswatch.clients.places_client import PlacesClient
from hourswatch.clients.alert_sinks import LogAlertSink, WebhookAlertSink

__all__ = ["PlacesClient", "LogAlertSink", "WebhookAlertSink"]
