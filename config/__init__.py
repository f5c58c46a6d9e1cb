"""Configuration package for the SimpleChat client.

Holds the optional JSON override file read by utils.config_loader.

Components:
- transport_config.json: overrides for the logging, transport, echo_server
  and storage sections
"""
