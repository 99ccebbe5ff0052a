"""Core monitoring logic for patient safe-zone and fall alerts.

This package contains the detection state machines and the alert
confirmation workflow, isolated from device and backend integrations
so they can be tested and reasoned about on their own.
"""
