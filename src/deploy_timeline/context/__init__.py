"""Read-only clients for the remote systems the auditor pulls data from.

These modules talk to the build-status source (Buildkite) and the code
host (GitHub) and hand raw data to the core pipeline.
"""
