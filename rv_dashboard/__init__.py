"""RV dashboard backend: MQTT telemetry to WebSocket clients, plus a small REST API."""
