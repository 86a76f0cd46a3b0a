"""Validator Watch — Substrate validator monitoring and alerting."""
