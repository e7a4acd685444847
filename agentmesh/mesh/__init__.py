"""Mesh layer — MQTT bridge that shares sensors and actuator commands between devices."""
