"""ProposalDesk client.

A command-line client for a freelance marketplace REST API that rebuilds a
task-centric view of received proposals, tracks one chosen proposal per task,
and commits the assignment back to the server.
"""

__version__ = "0.1.0"
