"""
Tickets Module
==============

Ticket lifecycle: state machine, escalation engine, breach sweep and
the public operation surface.
"""
