"""
Hub kernel: persistence base, stock ledger, status state machines, domain
events and the ambient logging / error / clock infrastructure shared by the
billing, events and incubation modules.
"""

__version__ = "0.1.0"
