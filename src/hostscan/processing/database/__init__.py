# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Analytics store access: schema, DuckDB client and resilient batch writer.
"""
