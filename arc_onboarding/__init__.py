"""Azure Arc Onboarding Toolkit.

Validates Windows servers against Azure Arc and Defender for Endpoint
prerequisites, registers the required resource providers, and produces a
consolidated readiness report across many devices.
"""

__version__ = "0.1.0"
__author__ = "Cloud Infrastructure Team"
