""" Lux Story narrative state engine

A pure computation layer over explicit player state snapshots: dialogue graphs,
condition evaluation, trust, pattern unlocks, identity and a bounded graph
simulator used to validate authored content.
"""
