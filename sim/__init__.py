"""
sim — Simulation core
=====================

Modules
-------
simulation
    :class:`Simulation` driver: population, spawning, alert injection, loop.
car
    :class:`Car` flooding protocol state machine.
directory
    :class:`Directory` location / alert tables and grid escalation.
clock
    :class:`Clock` coalesced next-event scheduler.
context
    :class:`SimContext` owner value handed to every component.
policy
    :class:`ProtocolPolicy` tunable constants.
route
    :class:`Route` kinematics and the default route table.
geo
    Low-level distance and grid helpers.
report
    pandas history table and summary.
"""
