"""Prepstream: resumable AI generation streams for interview preparation."""
