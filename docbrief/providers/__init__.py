"""Concrete adapters for the interfaces in docbrief.interfaces."""
