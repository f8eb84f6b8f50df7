"""
SLA Module
==========

SLA policies, TAT math, escalation chains and ticket metrics.
"""
