"""Deploy Timeline auditor.

Reconstructs which commits were built, which builds reached production,
and which pull-request commits each deploy carried, for a given time
window of a Buildkite pipeline.
"""

__version__ = "0.1.0"
