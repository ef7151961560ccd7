"""
Azure NPM iptables layer.

Installs the AZURE-NPM chains and default rules, keeps the AZURE-NPM jump
ordered after the peer service chain in FORWARD, and tears it all down.
"""

__version__ = "1.0.0"
__author__ = "Azure Container Networking Team"
