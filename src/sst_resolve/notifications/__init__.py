"""
Notifications Module
====================

Outbox consumer delivering ticket events to Slack.
"""
