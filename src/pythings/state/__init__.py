"""State layer.

Timestamp merge policy, band/event names and the deferred-task queue
that every band mutation routes its notifications through.
"""
