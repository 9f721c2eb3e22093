"""Task graph engine: storage, ordering, state machine, and the service facade.

The service opens exactly one SQLite transaction per verb. Guards (single
active task, dependency gating, completion criteria, acyclicity) are checked
against rows read inside that transaction, so a rejected call never leaves a
partial write behind.
"""
