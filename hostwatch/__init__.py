"""Alert evaluation and history for monitored remote hosts.

This package contains the threshold rules, deduplication, bounded alert
history and the monitoring pipeline that ties them together, isolated from
the transport that fetches telemetry.
"""
