"""
Tink Agent
Runs provisioning workflow actions as containers on the machine being provisioned.
"""

__version__ = "0.1.0"
