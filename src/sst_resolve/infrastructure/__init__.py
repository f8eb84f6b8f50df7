"""
Infrastructure Package
======================

Cross-context infrastructure (database engine and sessions).
"""
