"""
Clinic Queue Service

A FastAPI-based front-desk ticketing service: sequential tickets, a single
patient in progress at a time, and live queue updates for display screens.
"""

__version__ = "1.0.0"
