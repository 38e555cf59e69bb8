"""Simulated smart IV pole sensor node.

This package holds the load-cell weight model, stability detection, telemetry
composition and alert policy for one infusion pole, isolated from the MQTT
transport so it can be driven and tested without a broker.
"""
