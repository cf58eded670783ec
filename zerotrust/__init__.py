"""Zero-trust browser security monitor core.

Domain reputation detectors, threat intelligence aggregation, policy
evaluation and alerting.
"""

__version__ = "0.3.0"
