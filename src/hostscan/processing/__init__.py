# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Processing layer for HostScan.
Consumes scan jobs from Redis Streams and writes analytics rows to DuckDB.
"""
