"""
aicat - conversational cat-girl assistant for OneBot chat hosts.

An instruction from a group or direct chat is turned into a bounded series of
permission-gated tool calls against the host, then answered in natural language.
"""

__version__ = "0.1.0"
