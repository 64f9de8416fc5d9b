#!/usr/bin/env python3
"""
Field Reconciler - Custom-Field Reconciliation Between Ticket Trackers

Main package for field-reconciler providing field classification, allowed-value
aggregation, cascading-field resolution and hash-protected mapping proposals
for migrating custom fields from a source tracker into a target tracker.

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Field Reconciler Team"
__description__ = "Custom-field reconciliation for ticket tracker migrations"
