"""Helpers shared by the command line tools in this repository."""
