"""Provision systemd-supervised OpenLLM model servers on a Linux host."""

__version__ = "0.1.0"
