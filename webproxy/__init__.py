"""Rewriting web proxy: fetches a page and routes every link in it back through the proxy."""

__version__ = "0.1.0"
