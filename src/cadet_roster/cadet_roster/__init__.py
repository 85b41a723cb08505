"""Cadet roster attendance package.

Organized by feature modules (attendance, cadets, reconciliation, backup)
over a local document cache and a remote document store boundary, with a
thin Flask controller layer on top.
"""
