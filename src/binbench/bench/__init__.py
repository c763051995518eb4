"""Timing subsystem for binbench.

Runs the built binary against the fixture repeatedly, either through the
external hyperfine utility or with the builtin runner, and summarizes
the wall-clock distribution.
"""
